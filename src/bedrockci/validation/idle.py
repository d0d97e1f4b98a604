"""Idle timeout detector: decides when a never-exiting server has gone quiet."""

from __future__ import annotations

import math
import time
from collections.abc import Callable

MonotonicClock = Callable[[], float]


def check_idle_timeout(timeout_seconds: float) -> float:
    """Return ``timeout_seconds`` as a float, rejecting non-positive or non-finite values."""

    if isinstance(timeout_seconds, bool) or not isinstance(timeout_seconds, (int, float)):
        raise ValueError(f"timeout_seconds must be a number, got {type(timeout_seconds).__name__}")
    if not math.isfinite(timeout_seconds) or timeout_seconds <= 0.0:
        raise ValueError("timeout_seconds must be finite and > 0")
    return float(timeout_seconds)


class IdleClock:
    """Countdown armed once the telemetry block completes.

    Before ``arm`` is called the detector never fires and ``remaining`` is
    ``None``, which the run loop reads as "no timeout branch".
    """

    __slots__ = ("_armed", "_clock", "_last_activity", "_timeout_seconds")

    def __init__(self, timeout_seconds: float, *, clock: MonotonicClock = time.monotonic) -> None:
        self._timeout_seconds = check_idle_timeout(timeout_seconds)
        self._clock = clock
        self._last_activity = clock()
        self._armed = False

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    @property
    def armed(self) -> bool:
        return self._armed

    def arm(self) -> None:
        self._armed = True

    def reset(self) -> None:
        """Restart the countdown at full duration."""

        self._last_activity = self._clock()

    def remaining(self) -> float | None:
        if not self._armed:
            return None
        elapsed = self._clock() - self._last_activity
        return max(self._timeout_seconds - elapsed, 0.0)

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0


__all__ = ["IdleClock", "MonotonicClock", "check_idle_timeout"]
