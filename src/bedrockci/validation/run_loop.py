"""
bedrockci — log multiplexer and run loop.

File: src/bedrockci/validation/run_loop.py

Purpose
- Fan two line sources (stdout, stderr) into one queue and drive a
  ``ValidationSession`` from it on a single task.
- Stop on idle expiry, on exhaustion of both streams, or on an external
  cancellation event; then terminate and reap the process on every path.

Non-functional requirements
- Line order is preserved within a stream only; cross-stream interleave is
  best-effort.
- Output still unread when the loop stops is discarded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal

from bedrockci.constants import SERVER_EXECUTABLE_NAME
from bedrockci.validation.idle import IdleClock, MonotonicClock, check_idle_timeout
from bedrockci.validation.launcher import LineSource, ServerProcess, launch_server
from bedrockci.validation.models import RunOutcome, StopReason
from bedrockci.validation.phase import LineOutcome, ValidationSession

logger = logging.getLogger(__name__)

StreamName = Literal["stdout", "stderr"]
LineObserver = Callable[[StreamName, str, LineOutcome], None]

_STREAMS: Final[tuple[StreamName, ...]] = ("stdout", "stderr")


@dataclass(frozen=True, slots=True)
class StreamLine:
    """One queue item; ``text is None`` marks the end of ``stream``."""

    stream: StreamName
    text: str | None
    error: Exception | None = None


async def run_log_loop(
    process: ServerProcess,
    *,
    idle_timeout_seconds: float | None,
    cancel_event: asyncio.Event | None = None,
    on_line: LineObserver | None = None,
    clock: MonotonicClock = time.monotonic,
) -> RunOutcome:
    """Watch ``process`` until it goes idle, closes both streams, or is cancelled.

    ``idle_timeout_seconds=None`` disables the idle detector entirely (the
    interactive variant). The process is terminated and reaped before this
    coroutine returns or raises.
    """

    started_ns = time.monotonic_ns()
    pumps: list[asyncio.Task[None]] = []
    cancel_task: asyncio.Task[bool] | None = None
    get_task: asyncio.Task[StreamLine] | None = None
    stop_reason = StopReason.STREAMS_CLOSED
    exit_code: int | None = None

    # The child is terminated and reaped on every path, argument errors included.
    try:
        idle_clock = (
            IdleClock(idle_timeout_seconds, clock=clock)
            if idle_timeout_seconds is not None
            else None
        )
        session = ValidationSession(idle_clock=idle_clock)
        queue: asyncio.Queue[StreamLine] = asyncio.Queue()
        sources: Mapping[StreamName, LineSource] = {
            "stdout": process.stdout,
            "stderr": process.stderr,
        }
        pumps = [asyncio.create_task(_pump(name, sources[name], queue)) for name in _STREAMS]
        if cancel_event is not None:
            cancel_task = asyncio.create_task(cancel_event.wait())
        open_streams: set[StreamName] = set(_STREAMS)

        while open_streams:
            if get_task is None:
                get_task = asyncio.create_task(queue.get())
            waiters: set[asyncio.Task[Any]] = {get_task}
            if cancel_task is not None:
                waiters.add(cancel_task)

            timeout = idle_clock.remaining() if idle_clock is not None else None
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )

            if cancel_task is not None and cancel_task in done:
                stop_reason = StopReason.CANCELLED
                break
            if get_task not in done:
                if idle_clock is not None and idle_clock.expired():
                    stop_reason = StopReason.IDLE_TIMEOUT
                    break
                continue

            item = get_task.result()
            get_task = None
            if item.text is None:
                open_streams.discard(item.stream)
                if item.error is not None:
                    raise item.error
                continue

            line = item.text.strip()
            if not line:
                continue
            outcome = session.feed(line)
            logger.debug(
                "server line",
                extra={
                    "stream": item.stream,
                    "line": line,
                    "event": outcome.event.kind.value,
                    "recorded": outcome.recorded,
                },
            )
            if on_line is not None:
                on_line(item.stream, line, outcome)
    finally:
        pending = [task for task in (*pumps, get_task, cancel_task) if task is not None]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        process.terminate()
        exit_code = await process.reap()

    outcome_value = RunOutcome(
        result=session.result(),
        stop_reason=stop_reason,
        final_phase=session.phase,
        exit_code=exit_code,
        duration_ms=_elapsed_ms(started_ns),
    )
    logger.info(
        "run loop stopped",
        extra={
            "stop_reason": stop_reason.value,
            "errors": outcome_value.result.error_count,
            "warnings": outcome_value.result.warning_count,
            "duration_ms": outcome_value.duration_ms,
        },
    )
    return outcome_value


async def validate_server(
    server_dir: str | Path,
    *,
    idle_timeout_seconds: float,
    executable_name: str = SERVER_EXECUTABLE_NAME,
    on_line: LineObserver | None = None,
) -> RunOutcome:
    """Spawn the server in ``server_dir`` and collect findings until it goes idle."""

    check_idle_timeout(idle_timeout_seconds)

    process = await launch_server(server_dir, executable_name=executable_name)
    return await run_log_loop(
        process,
        idle_timeout_seconds=idle_timeout_seconds,
        on_line=on_line,
    )


async def serve_interactive(
    server_dir: str | Path,
    *,
    cancel_event: asyncio.Event,
    executable_name: str = SERVER_EXECUTABLE_NAME,
    on_line: LineObserver | None = None,
) -> RunOutcome:
    """Run the server until ``cancel_event`` is set or it closes its output."""

    process = await launch_server(server_dir, executable_name=executable_name)
    return await run_log_loop(
        process,
        idle_timeout_seconds=None,
        cancel_event=cancel_event,
        on_line=on_line,
    )


async def _pump(name: StreamName, source: LineSource, queue: asyncio.Queue[StreamLine]) -> None:
    try:
        while True:
            raw = await source.readline()
            if not raw:
                break
            queue.put_nowait(StreamLine(stream=name, text=_decode(raw)))
    except (OSError, ValueError) as exc:
        queue.put_nowait(StreamLine(stream=name, text=None, error=exc))
        return
    queue.put_nowait(StreamLine(stream=name, text=None))


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


def _elapsed_ms(started_ns: int) -> int:
    delta_ns = time.monotonic_ns() - started_ns
    if delta_ns < 0:
        return 0
    return delta_ns // 1_000_000


__all__ = [
    "LineObserver",
    "StreamLine",
    "StreamName",
    "run_log_loop",
    "serve_interactive",
    "validate_server",
]
