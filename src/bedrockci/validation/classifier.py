"""
Line classifier for dedicated-server console output.

Control markers are checked first and short-circuit; otherwise the first
severity keyword found (ERROR > WARN > INFO) decides the bucket. Lines with
no recognised keyword are ignored, which is the normal case for most output.
"""

from __future__ import annotations

import re
from typing import Final

from bedrockci.constants import (
    ERROR_MARKER,
    INFO_MARKER,
    SERVER_STARTED_MARKER,
    TELEMETRY_BEGIN_MARKER,
    TELEMETRY_SEPARATOR_MIN_RUN,
    WARN_MARKER,
)
from bedrockci.validation.models import ClassificationEvent, EventKind, Finding, Severity

_SEPARATOR_RE: Final[re.Pattern[str]] = re.compile(f"={{{TELEMETRY_SEPARATOR_MIN_RUN},}}")

_SEVERITY_MARKERS: Final[tuple[tuple[str, Severity], ...]] = (
    (ERROR_MARKER, Severity.ERROR),
    (WARN_MARKER, Severity.WARNING),
    (INFO_MARKER, Severity.INFO),
)

_SERVER_STARTED: Final[ClassificationEvent] = ClassificationEvent(EventKind.SERVER_STARTED)
_TELEMETRY_BEGIN: Final[ClassificationEvent] = ClassificationEvent(EventKind.TELEMETRY_BEGIN)
_TELEMETRY_END: Final[ClassificationEvent] = ClassificationEvent(EventKind.TELEMETRY_END)
_IGNORED: Final[ClassificationEvent] = ClassificationEvent(EventKind.IGNORED)


def classify(line: str, *, in_telemetry_block: bool = False) -> ClassificationEvent:
    """Classify one trimmed, non-empty line.

    ``in_telemetry_block`` is the only tracker state the classifier needs: a
    separator line is a control marker only while the telemetry block is open.
    """

    if SERVER_STARTED_MARKER in line:
        return _SERVER_STARTED
    if TELEMETRY_BEGIN_MARKER in line:
        return _TELEMETRY_BEGIN
    if in_telemetry_block and is_separator(line):
        return _TELEMETRY_END

    severity = severity_of(line)
    if severity is None:
        return _IGNORED
    category, message = split_category(line)
    return ClassificationEvent(
        EventKind.SEVERITY,
        Finding(severity=severity, text=line, message=message, category=category),
    )


def severity_of(line: str) -> Severity | None:
    for marker, severity in _SEVERITY_MARKERS:
        if marker in line:
            return severity
    return None


def is_separator(line: str) -> bool:
    return _SEPARATOR_RE.search(line) is not None


def split_category(line: str) -> tuple[str | None, str]:
    """Extract ``Category`` and the message from ``[x] [Category] message``.

    Returns ``(None, line)`` when the line has fewer than two ``]``-delimited
    segments or the second segment is blank.
    """

    parts = line.split("]", 2)
    if len(parts) < 3:
        return None, line
    category = parts[1].strip().lstrip("[").strip()
    if not category:
        return None, line
    return category, parts[2].strip()


__all__ = ["classify", "is_separator", "severity_of", "split_category"]
