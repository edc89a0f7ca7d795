"""Named checks evaluated against HTTP responses.

A check is a labelled predicate over a ``ResponseSnapshot``. Predicates
return ``(passed, message)`` so reports can say why a check failed, and
they never raise into the caller: ``evaluate`` turns predicate errors into
failed results. Checks are recorded, never fatal to an iteration.

The snapshot accepts both httpx responses (asyncio driver) and
requests-style responses (Locust), since both expose ``status_code`` and
``text``.
"""

import json
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

Predicate = Callable[["ResponseSnapshot"], Tuple[bool, str]]

_UNPARSED = object()


@dataclass
class ResponseSnapshot:
    """Minimal view of an HTTP response with a lazily parsed JSON body."""
    status_code: int
    text: str
    elapsed_ms: float = 0.0
    _parsed: Any = field(default=_UNPARSED, init=False, repr=False, compare=False)

    @classmethod
    def from_response(cls, response: Any, elapsed_ms: float = 0.0) -> "ResponseSnapshot":
        return cls(
            status_code=int(response.status_code or 0),
            text=response.text or "",
            elapsed_ms=elapsed_ms,
        )

    def json(self) -> Any:
        """Parse the body once; raises ``ValueError`` if it is not JSON."""
        if self._parsed is _UNPARSED:
            self._parsed = json.loads(self.text)
        return self._parsed


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one check against one response."""
    name: str
    passed: bool
    message: str = ""


@dataclass(frozen=True)
class Check:
    name: str
    predicate: Predicate


def status_in(*codes: int) -> Predicate:
    """Pass when the status code is one of ``codes``."""
    allowed = frozenset(codes)

    def predicate(snapshot: ResponseSnapshot) -> Tuple[bool, str]:
        if snapshot.status_code in allowed:
            return True, f"status {snapshot.status_code}"
        expected = ", ".join(str(code) for code in sorted(allowed))
        return False, f"status {snapshot.status_code} not in [{expected}]"

    return predicate


def body_contains(substring: str) -> Predicate:
    """Pass when the raw body text contains ``substring``."""

    def predicate(snapshot: ResponseSnapshot) -> Tuple[bool, str]:
        if substring in snapshot.text:
            return True, f"body contains {substring!r}"
        return False, f"body does not contain {substring!r}"

    return predicate


def json_sequence_not_empty() -> Predicate:
    """Pass when the body is a JSON array with at least one element."""

    def predicate(snapshot: ResponseSnapshot) -> Tuple[bool, str]:
        try:
            body = snapshot.json()
        except ValueError as e:
            return False, f"body is not valid JSON: {e}"
        if not isinstance(body, list):
            return False, f"body is a JSON {type(body).__name__}, not an array"
        if not body:
            return False, "body is an empty array"
        return True, f"body has {len(body)} items"

    return predicate


CREATE_CHECKS: Tuple[Check, ...] = (
    Check("POST status is 200", status_in(200, 201)),
    Check("POST response contains idDepart", body_contains("idDepart")),
)

LIST_CHECKS: Tuple[Check, ...] = (
    Check("GET status is 200", status_in(200)),
    Check("GET response has at least one department", json_sequence_not_empty()),
)


def evaluate(snapshot: ResponseSnapshot, checks: Iterable[Check]) -> List[CheckResult]:
    """Run every check against ``snapshot``."""
    results = []
    for check in checks:
        try:
            passed, message = check.predicate(snapshot)
        except Exception as e:
            passed, message = False, f"check raised {type(e).__name__}: {e}"
        results.append(CheckResult(check.name, bool(passed), message))
    return results


def failed_results(checks: Iterable[Check], reason: str) -> List[CheckResult]:
    """Fail every check of a call that produced no response."""
    return [CheckResult(check.name, False, f"no response: {reason}") for check in checks]


def apply_checks(response: Any, checks: Iterable[Check]) -> List[CheckResult]:
    """Mark a ``catch_response`` style response by its check outcomes.

    Calls ``response.failure`` with the failing checks' messages joined by
    ``"; "`` when any check fails, ``response.success()`` otherwise.
    """
    results = evaluate(ResponseSnapshot.from_response(response), checks)
    failures = [result for result in results if not result.passed]
    if failures:
        response.failure("; ".join(f"{result.name}: {result.message}" for result in failures))
    else:
        response.success()
    return results


class CheckTally:
    """Aggregate pass/fail counts per check name, in first-seen order."""

    def __init__(self):
        self._counts: "OrderedDict[str, List[int]]" = OrderedDict()

    def register(self, checks: Iterable[Check]) -> None:
        """Pre-register names so checks that never ran still show up."""
        for check in checks:
            self._counts.setdefault(check.name, [0, 0])

    def record(self, results: Sequence[CheckResult]) -> None:
        for result in results:
            counts = self._counts.setdefault(result.name, [0, 0])
            counts[0 if result.passed else 1] += 1

    def summary(self) -> Dict[str, Dict[str, Any]]:
        """Per-check passes, fails and pass rate (``None`` when never run)."""
        summary = {}
        for name, (passes, fails) in self._counts.items():
            total = passes + fails
            summary[name] = {
                "passes": passes,
                "fails": fails,
                "pass_rate": passes / total if total else None,
            }
        return summary

    def totals(self) -> Tuple[int, int]:
        passes = sum(counts[0] for counts in self._counts.values())
        fails = sum(counts[1] for counts in self._counts.values())
        return passes, fails

    def overall_pass_rate(self) -> float:
        """Fraction of all check evaluations that passed (1.0 when none ran)."""
        passes, fails = self.totals()
        total = passes + fails
        return passes / total if total else 1.0
