"""Request payloads sent by virtual users."""

import random
import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_NAME_PREFIX = "TestDept-"
DEFAULT_NAME_UPPER_BOUND = 1000

NAME_PATTERN = re.compile(r"^TestDept-(\d+)$")


class Department(BaseModel):
    """Department create request.

    ``idDepart`` is always sent as 0; the server is expected to assign
    its own identifier.
    """

    model_config = ConfigDict(populate_by_name=True)

    id_depart: int = Field(0, alias="idDepart", description="Placeholder identifier")
    nom_depart: str = Field(..., alias="nomDepart", min_length=1, description="Department name")

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with the wire field names."""
        return self.model_dump(by_alias=True)


def random_department_name(
    rng: Optional[random.Random] = None,
    prefix: str = DEFAULT_NAME_PREFIX,
    upper: int = DEFAULT_NAME_UPPER_BOUND,
) -> str:
    """Return ``prefix`` followed by a random integer in ``[0, upper)``."""
    rng = rng or random
    return f"{prefix}{rng.randrange(upper)}"


def build_department(
    rng: Optional[random.Random] = None,
    prefix: str = DEFAULT_NAME_PREFIX,
    upper: int = DEFAULT_NAME_UPPER_BOUND,
) -> Department:
    """Build a fresh department payload for one iteration."""
    return Department(id_depart=0, nom_depart=random_department_name(rng, prefix, upper))
