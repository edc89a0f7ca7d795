"""Configuration management for the departement load test.

This module centralizes environment-driven configuration for the load-test
driver, the CLI and the Locust user. It builds on
``pydantic_settings.BaseSettings`` so configuration can be provided via
environment variables (``LT_*``), a ``.env`` file, or defaults.

Highlights
- Strongly-typed settings with sensible defaults
- k6-style durations (``30s``, ``1m30s``, ``500ms``) parsed once at startup
- Validation failures surface as ``ConfigurationError`` before any load runs

Usage
- ``config = LoadTestConfig()`` to read the environment as-is
- ``config = load_config(lt_vus=10, lt_duration="5s")`` to apply overrides
"""

import math
import re
from typing import Any, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_BASE_URL = "http://localhost:8089/kaddem/departement"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class ConfigurationError(Exception):
    """Load test configuration is invalid or the target is unreachable."""
    pass


def parse_duration(value: Any) -> float:
    """Convert a duration into seconds.

    Accepts bare numbers (seconds) or k6-style strings made of one or more
    ``<number><unit>`` parts where unit is ``ms``, ``s``, ``m`` or ``h``,
    e.g. ``"30s"``, ``"1m30s"``, ``"250ms"``.

    Raises ``ValueError`` for malformed strings and totals that are not
    finite and positive.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")

    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            position = 0
            seconds = 0.0
            for match in _DURATION_PART.finditer(text):
                if match.start() != position:
                    break
                seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
                position = match.end()
            if position == 0 or position != len(text):
                raise ValueError(f"Invalid duration: {value!r}")

    if not math.isfinite(seconds):
        raise ValueError(f"Duration must be finite: {value!r}")
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds


class LoadTestConfig(BaseSettings):
    """Configuration for a load-test run.

    Parameters are read from the process environment using the upper-cased
    field names (``LT_VUS``, ``LT_DURATION`` ...). Values are immutable for
    the duration of a run.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Environment
    lt_env: str = Field(default="local")

    # Target
    lt_base_url: str = Field(default=DEFAULT_BASE_URL)

    # Load shape
    lt_vus: int = Field(default=1000, ge=1)
    lt_duration: str = Field(default="30s")
    lt_sleep_seconds: float = Field(default=1.0, ge=0)
    lt_ramp_up_seconds: float = Field(default=0.0, ge=0)
    lt_graceful_stop_seconds: float = Field(default=30.0, ge=0)
    lt_request_timeout_seconds: float = Field(default=60.0, gt=0)
    lt_preflight: bool = Field(default=True)

    # Payload
    lt_name_prefix: str = Field(default="TestDept-", min_length=1)
    lt_name_upper_bound: int = Field(default=1000, ge=1)

    # Thresholds (rates are fractions in [0, 1])
    lt_min_check_pass_rate: Optional[float] = Field(default=None, ge=0, le=1)
    lt_max_http_failure_rate: Optional[float] = Field(default=None, ge=0, le=1)

    # Output
    lt_report_path: Optional[str] = Field(default=None)
    lt_profile_generator: bool = Field(default=False)
    lt_metrics_port: Optional[int] = Field(default=None, ge=1, le=65535)

    # Logging
    lt_log_level: str = Field(default="INFO")
    lt_log_format: str = Field(default="json")

    @field_validator("lt_base_url")
    @classmethod
    def _validate_base_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("base URL must start with http:// or https://")
        return value.rstrip("/")

    @field_validator("lt_duration", mode="before")
    @classmethod
    def _validate_duration(cls, value: Any) -> str:
        parse_duration(value)
        return str(value)

    @field_validator("lt_log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @field_validator("lt_log_format")
    @classmethod
    def _validate_log_format(cls, value: str) -> str:
        if value not in {"json", "console"}:
            raise ValueError("log format must be 'json' or 'console'")
        return value

    @property
    def duration_seconds(self) -> float:
        """Run duration in seconds."""
        return parse_duration(self.lt_duration)

    @property
    def create_url(self) -> str:
        return f"{self.lt_base_url}/add-departement"

    @property
    def list_url(self) -> str:
        return f"{self.lt_base_url}/retrieve-all-departements"


def load_config(**overrides: Any) -> LoadTestConfig:
    """Build a ``LoadTestConfig`` from the environment plus overrides.

    ``None`` overrides are ignored so CLI flags that were not given fall back
    to the environment. Validation problems are re-raised as
    ``ConfigurationError`` with pydantic's message attached.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return LoadTestConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e
