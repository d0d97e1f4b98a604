"""Output rendering abstraction for the bedrockci CLI.

File: src/bedrockci/ui/render.py

Purpose
- Provide a thin rendering layer for CLI output with optional ANSI color.
- Respect NO_COLOR environment variable and --no-color CLI flag.
- Decide which server lines an interactive run shows, and in which style.

Functional requirements
- Plain-text rendering must always work; color is decoration only.
- Rendering never feeds back into classification or verdicts.
"""

from __future__ import annotations

import os
import sys
from enum import StrEnum
from typing import TYPE_CHECKING, Final, TextIO

from bedrockci.constants import ERROR_MARKER, INFO_MARKER, SERVER_STARTED_MARKER, WARN_MARKER

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bedrockci.validation.verdict import Verdict


class LineStyle(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    MUTED = "muted"
    SUCCESS = "success"


_ANSI: Final[dict[LineStyle, str]] = {
    LineStyle.ERROR: "\x1b[31m",
    LineStyle.WARNING: "\x1b[33m",
    LineStyle.INFO: "\x1b[34m",
    LineStyle.MUTED: "\x1b[2m",
    LineStyle.SUCCESS: "\x1b[1;32m",
}
_RESET: Final[str] = "\x1b[0m"

# Startup lines worth showing before the ready marker even without --verbose.
_STARTUP_HIGHLIGHTS: Final[tuple[str, ...]] = (
    "Starting Server",
    "IPv4 supported",
    "IPv6 supported",
    "Level Name:",
    "Game mode:",
    "Difficulty:",
    "opening worlds",
)
_SESSION_HIGHLIGHTS: Final[tuple[str, ...]] = (
    "Player connected:",
    "Player disconnected:",
    "Player Spawned:",
    "[Chat]",
)
_HOUSEKEEPING_INFO: Final[tuple[str, ...]] = (
    "Running AutoCompaction",
    "AutoCompaction took",
    "Saving...",
    "Changes to the level are resumed",
)


def interactive_line_style(line: str, *, started: bool, verbose: bool) -> LineStyle | None:
    """Style for one server line in an interactive run; ``None`` hides it."""

    if SERVER_STARTED_MARKER in line:
        return LineStyle.SUCCESS
    if not started and any(marker in line for marker in _STARTUP_HIGHLIGHTS):
        return LineStyle.INFO
    if ERROR_MARKER in line:
        return LineStyle.ERROR
    if WARN_MARKER in line:
        return LineStyle.WARNING
    if verbose:
        return LineStyle.INFO if INFO_MARKER in line else LineStyle.MUTED
    if any(marker in line for marker in _SESSION_HIGHLIGHTS):
        return LineStyle.INFO
    if INFO_MARKER in line and any(marker in line for marker in _HOUSEKEEPING_INFO):
        return LineStyle.INFO
    return None


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin CLI output renderer.

    Produces clean, deterministic plain-text output.
    Respects ``NO_COLOR`` env var and ``--no-color`` flag.
    """

    def __init__(
        self, *, no_color: bool = False, verbose: bool = False, stream: TextIO | None = None
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    def _write(self, text: str) -> None:
        print(text, file=self._stream, flush=True)

    def paint(self, text: str, style: LineStyle) -> str:
        if not self._color:
            return text
        return f"{_ANSI[style]}{text}{_RESET}"

    def heading(self, text: str) -> None:
        self._write(self.paint(text, LineStyle.SUCCESS))

    def kv(self, key: str, value: object) -> None:
        self._write(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._write(line)

    def styled(self, line: str, style: LineStyle) -> None:
        self._write(self.paint(line, style))

    def blank(self) -> None:
        self._write("")

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._write(f"\n{title}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._write(f"  {prefix}{entry}")

    def ok(self, label: str) -> None:
        self._write(self.paint(f"  OK  {label}", LineStyle.SUCCESS))

    def fail(self, label: str) -> None:
        self._write(self.paint(f"  FAIL  {label}", LineStyle.ERROR))

    def verdict(self, verdict: Verdict) -> None:
        """Print the category-grouped report followed by the pass/fail summary."""

        lines = verdict.report.lines(include_info=self.verbose)
        if lines:
            self.section("Findings:")
            for line in lines:
                style = _REPORT_STYLES.get(line.split(" ", 1)[0])
                self._write(self.paint(line, style) if style is not None else line)
        self.blank()
        if verdict.passed:
            self.ok(verdict.summary)
        else:
            self.fail(verdict.summary)


_REPORT_STYLES: Final[dict[str, LineStyle]] = {
    "Errors": LineStyle.ERROR,
    "Warnings": LineStyle.WARNING,
    "Info": LineStyle.INFO,
}


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "LineStyle", "create_renderer", "interactive_line_style"]
