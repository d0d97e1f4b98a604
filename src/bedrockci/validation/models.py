"""
bedrockci — validation data model.

File: src/bedrockci/validation/models.py

Purpose
- Immutable value types shared by the classifier, the phase tracker, the run
  loop and the verdict engine.

Functional requirements
- ``ValidationPhase`` is a tagged value; transitions live in ``phase.py``.
- ``Finding`` and ``ValidationResult`` are immutable once produced.
- JSON-safe export with stable key order for ``--json`` output.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from enum import StrEnum

from bedrockci.constants import OTHER_CATEGORY

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class Severity(StrEnum):
    """Severity of one recorded server line, highest priority first."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class TelemetryState(StrEnum):
    NOT_SEEN = "not_seen"
    IN_BLOCK = "in_block"
    COMPLETE = "complete"


class EventKind(enum.Enum):
    SERVER_STARTED = "server_started"
    TELEMETRY_BEGIN = "telemetry_begin"
    TELEMETRY_END = "telemetry_end"
    SEVERITY = "severity"
    IGNORED = "ignored"


class StopReason(StrEnum):
    """Why the run loop stopped watching the server."""

    IDLE_TIMEOUT = "idle_timeout"
    STREAMS_CLOSED = "streams_closed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class Finding:
    """One classified server line.

    ``text`` is the trimmed raw line; ``message`` is the part after the
    category prefix, or the full line when no category could be extracted.
    """

    severity: Severity
    text: str
    message: str
    category: str | None = None

    @property
    def bucket(self) -> str:
        return self.category if self.category is not None else OTHER_CATEGORY

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "severity": self.severity.value,
            "text": self.text,
            "message": self.message,
            "category": self.category,
        }


@dataclass(frozen=True, slots=True)
class ClassificationEvent:
    """Result of classifying one line; ``finding`` is set only for ``SEVERITY``."""

    kind: EventKind
    finding: Finding | None = None


@dataclass(frozen=True, slots=True)
class ValidationPhase:
    """Composite gate state: ready marker seen, and telemetry block progress."""

    started: bool = False
    telemetry: TelemetryState = TelemetryState.NOT_SEEN

    @property
    def recording(self) -> bool:
        """Whether severity lines are appended to the accumulator."""

        return self.started and self.telemetry is not TelemetryState.IN_BLOCK

    @property
    def in_telemetry_block(self) -> bool:
        return self.telemetry is TelemetryState.IN_BLOCK

    @property
    def idle_armed(self) -> bool:
        return self.telemetry is TelemetryState.COMPLETE


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Findings accumulated during one run, in arrival order per severity."""

    errors: tuple[Finding, ...] = ()
    warnings: tuple[Finding, ...] = ()
    info: tuple[Finding, ...] = ()

    def findings(self, severity: Severity) -> tuple[Finding, ...]:
        if severity is Severity.ERROR:
            return self.errors
        if severity is Severity.WARNING:
            return self.warnings
        return self.info

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "errors": [item.to_dict() for item in self.errors],
            "warnings": [item.to_dict() for item in self.warnings],
            "info": [item.to_dict() for item in self.info],
        }


@dataclass(frozen=True, slots=True)
class RunOutcome:
    """What the run loop hands back to its caller."""

    result: ValidationResult
    stop_reason: StopReason
    final_phase: ValidationPhase = field(default_factory=ValidationPhase)
    exit_code: int | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "result": self.result.to_dict(),
            "stop_reason": self.stop_reason.value,
            "server_started": self.final_phase.started,
            "telemetry": self.final_phase.telemetry.value,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
        }


__all__ = [
    "ClassificationEvent",
    "EventKind",
    "Finding",
    "JSONScalar",
    "JSONValue",
    "RunOutcome",
    "Severity",
    "StopReason",
    "TelemetryState",
    "ValidationPhase",
    "ValidationResult",
]
