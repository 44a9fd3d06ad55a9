"""Probe results — one shared header, three variants.

``TimedResult`` covers every probe that got far enough to be timed.
``UnreachedResult`` is a failure before timing could start (database
connect, DNS resolve). ``MismatchResult`` is the json probe's body
mismatch and carries ``expected`` / ``actual`` instead of timing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar


class ResultKind(str, Enum):
    TIMED = "timed"
    UNREACHED = "unreached"
    MISMATCH = "mismatch"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def describe_error(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


@dataclass
class ProbeResult:
    """Common header of every probe outcome."""

    target: str
    check_type: str
    success: bool = False
    message: str = ""
    cause: str | None = None

    kind: ClassVar[ResultKind]

    def _header(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "kind": self.kind.value,
            "type": self.check_type,
            "success": self.success,
            "target": self.target,
        }
        if self.message:
            record["message"] = self.message
        if self.cause is not None:
            record["cause"] = self.cause
        return record

    def to_record(self) -> dict[str, Any]:
        """JSON-able dict used for persistence and notification bodies."""
        return self._header()


@dataclass
class TimedResult(ProbeResult):
    """Outcome of a probe that ran to completion (or to its transport error)."""

    response_time_ms: float = 0.0
    observed_at: str = ""
    status_code: int | None = None

    kind: ClassVar[ResultKind] = ResultKind.TIMED

    def __post_init__(self) -> None:
        if not self.observed_at:
            self.observed_at = utc_now()

    def to_record(self) -> dict[str, Any]:
        record = self._header()
        record["response_time_ms"] = self.response_time_ms
        record["observed_at"] = self.observed_at
        if self.status_code is not None:
            record["status_code"] = self.status_code
        return record


@dataclass
class UnreachedResult(ProbeResult):
    """The probe could not start; there is nothing to time."""

    kind: ClassVar[ResultKind] = ResultKind.UNREACHED

    def __post_init__(self) -> None:
        if self.success:
            raise ValueError("UnreachedResult is always a failure")


@dataclass
class MismatchResult(ProbeResult):
    """Response body differed from the expected document."""

    expected: Any = None
    actual: Any = None

    kind: ClassVar[ResultKind] = ResultKind.MISMATCH

    def __post_init__(self) -> None:
        if self.success:
            raise ValueError("MismatchResult is always a failure")

    def to_record(self) -> dict[str, Any]:
        record = self._header()
        record["expected"] = self.expected
        record["actual"] = self.actual
        return record
