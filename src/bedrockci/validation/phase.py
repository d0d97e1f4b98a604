"""
bedrockci — validation phase tracking.

File: src/bedrockci/validation/phase.py

Purpose
- Pure ``(phase, event) -> phase`` transition function for the gate.
- ``ValidationAccumulator``: ordered findings per severity.
- ``ValidationSession``: classifier + tracker + accumulator + idle clock
  driven one line at a time, with no process or stream involved.

Functional requirements
- Nothing is recorded before the ready marker.
- Nothing is recorded inside the telemetry block.
- Telemetry progress is monotonic; ``COMPLETE`` is never left.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from bedrockci.validation.classifier import classify
from bedrockci.validation.idle import IdleClock
from bedrockci.validation.models import (
    ClassificationEvent,
    EventKind,
    Finding,
    Severity,
    TelemetryState,
    ValidationPhase,
    ValidationResult,
)

logger = logging.getLogger(__name__)

INITIAL_PHASE = ValidationPhase()


def advance(phase: ValidationPhase, event: ClassificationEvent) -> ValidationPhase:
    """Apply one classified event to the gate state."""

    if event.kind is EventKind.SERVER_STARTED:
        if phase.started:
            return phase
        return replace(phase, started=True)
    if event.kind is EventKind.TELEMETRY_BEGIN:
        if phase.telemetry is not TelemetryState.NOT_SEEN:
            return phase
        return replace(phase, telemetry=TelemetryState.IN_BLOCK)
    if event.kind is EventKind.TELEMETRY_END:
        if phase.telemetry is not TelemetryState.IN_BLOCK:
            return phase
        return replace(phase, telemetry=TelemetryState.COMPLETE)
    return phase


class ValidationAccumulator:
    """Arrival-ordered findings, one list per severity."""

    __slots__ = ("_buckets",)

    def __init__(self) -> None:
        self._buckets: dict[Severity, list[Finding]] = {severity: [] for severity in Severity}

    def append(self, finding: Finding) -> None:
        self._buckets[finding.severity].append(finding)

    def count(self, severity: Severity) -> int:
        return len(self._buckets[severity])

    def __len__(self) -> int:
        return sum(len(items) for items in self._buckets.values())

    def snapshot(self) -> ValidationResult:
        return ValidationResult(
            errors=tuple(self._buckets[Severity.ERROR]),
            warnings=tuple(self._buckets[Severity.WARNING]),
            info=tuple(self._buckets[Severity.INFO]),
        )


@dataclass(frozen=True, slots=True)
class LineOutcome:
    event: ClassificationEvent
    recorded: bool
    phase: ValidationPhase


class ValidationSession:
    """Per-run state owned by exactly one run loop.

    ``idle_clock`` may be ``None`` for interactive runs, where only an
    operator interrupt or stream exhaustion ends the loop.
    """

    def __init__(self, *, idle_clock: IdleClock | None = None) -> None:
        self._phase = INITIAL_PHASE
        self._accumulator = ValidationAccumulator()
        self._idle_clock = idle_clock

    @property
    def phase(self) -> ValidationPhase:
        return self._phase

    @property
    def idle_clock(self) -> IdleClock | None:
        return self._idle_clock

    def feed(self, line: str) -> LineOutcome:
        """Classify and apply one trimmed, non-empty line."""

        event = classify(line, in_telemetry_block=self._phase.in_telemetry_block)
        previous = self._phase
        self._phase = advance(previous, event)

        if self._phase != previous:
            self._on_transition(previous, event)

        recorded = False
        if event.finding is not None and self._phase.recording:
            self._accumulator.append(event.finding)
            if self._idle_clock is not None:
                self._idle_clock.reset()
            recorded = True

        return LineOutcome(event=event, recorded=recorded, phase=self._phase)

    def result(self) -> ValidationResult:
        return self._accumulator.snapshot()

    def _on_transition(self, previous: ValidationPhase, event: ClassificationEvent) -> None:
        logger.info(
            "validation phase changed",
            extra={
                "event": event.kind.value,
                "started": self._phase.started,
                "telemetry": self._phase.telemetry.value,
                "previous_telemetry": previous.telemetry.value,
            },
        )
        if self._idle_clock is None:
            return
        if event.kind in {EventKind.TELEMETRY_BEGIN, EventKind.TELEMETRY_END}:
            self._idle_clock.reset()
        if self._phase.idle_armed:
            self._idle_clock.arm()


__all__ = [
    "INITIAL_PHASE",
    "LineOutcome",
    "ValidationAccumulator",
    "ValidationSession",
    "advance",
]
