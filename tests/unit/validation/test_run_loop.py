"""
bedrockci — unit tests for the log multiplexer / run loop

File: tests/unit/validation/test_run_loop.py

Purpose
- Drive ``run_log_loop`` with scripted line sources instead of a live server.

What this test file should cover
- Idle expiry after the telemetry block ends, and resets on recorded findings.
- Termination on closed streams and on external cancellation.
- The process handle is terminated and reaped exactly once on every exit path.
- Stream errors propagate after cleanup.

Non-functional requirements
- Short timeouts only; no real subprocesses.
"""

from __future__ import annotations

import asyncio
import contextlib

import pytest

from bedrockci.validation.models import StopReason, TelemetryState
from bedrockci.validation.phase import LineOutcome
from bedrockci.validation.run_loop import StreamName, run_log_loop
from bedrockci.validation.verdict import VerdictPolicy, evaluate

SEPARATOR = "=" * 52
PREAMBLE = ("Starting Server", "Server started.", "TELEMETRY MESSAGE xyz", "junk line", SEPARATOR)


class _ScriptedSource:
    """``readline``-compatible source fed from a queue; ``None`` means EOF."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | Exception | None] = asyncio.Queue()

    def push(self, *lines: str) -> None:
        for line in lines:
            self._queue.put_nowait(f"{line}\n".encode())

    def close(self) -> None:
        self._queue.put_nowait(None)

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    async def readline(self) -> bytes:
        item = await self._queue.get()
        if item is None:
            self._queue.put_nowait(None)
            return b""
        if isinstance(item, Exception):
            raise item
        return item


class _FakeProcess:
    def __init__(self) -> None:
        self.stdout = _ScriptedSource()
        self.stderr = _ScriptedSource()
        self.pid = 4242
        self.terminate_calls = 0
        self.reap_calls = 0

    def terminate(self) -> None:
        self.terminate_calls += 1

    async def reap(self) -> int | None:
        self.reap_calls += 1
        return -9


@pytest.mark.unit
@pytest.mark.asyncio
async def test_end_to_end_scenario_stops_on_idle() -> None:
    process = _FakeProcess()
    process.stdout.push(
        *PREAMBLE,
        "[INFO] [General] all good",
        "[ERROR] [PackLoader] bad manifest",
    )

    outcome = await run_log_loop(process, idle_timeout_seconds=0.1)

    assert outcome.stop_reason is StopReason.IDLE_TIMEOUT
    assert [item.text for item in outcome.result.errors] == ["[ERROR] [PackLoader] bad manifest"]
    assert outcome.result.warnings == ()
    assert [item.text for item in outcome.result.info] == ["[INFO] [General] all good"]
    assert outcome.final_phase.telemetry is TelemetryState.COMPLETE
    assert outcome.exit_code == -9
    assert process.terminate_calls == 1
    assert process.reap_calls == 1
    assert not evaluate(outcome.result, VerdictPolicy.NORMAL).passed


@pytest.mark.unit
@pytest.mark.asyncio
async def test_findings_within_timeout_keep_the_loop_alive() -> None:
    process = _FakeProcess()
    timeout = 0.3
    process.stdout.push(*PREAMBLE)

    async def _feed() -> None:
        for index in range(6):
            await asyncio.sleep(timeout / 3)
            process.stderr.push(f"[WARN] [Molang] tick {index}")
        process.stdout.close()
        process.stderr.close()

    feeder = asyncio.create_task(_feed())
    outcome = await run_log_loop(process, idle_timeout_seconds=timeout)
    await feeder

    assert outcome.stop_reason is StopReason.STREAMS_CLOSED
    assert [item.message for item in outcome.result.warnings] == [
        f"tick {index}" for index in range(6)
    ]
    assert process.reap_calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_idle_clock_is_not_armed_before_telemetry_completes() -> None:
    process = _FakeProcess()
    process.stdout.push("Server started.", "[ERROR] [Boot] recorded early")

    async def _close_later() -> None:
        await asyncio.sleep(0.25)
        process.stdout.close()
        process.stderr.close()

    closer = asyncio.create_task(_close_later())
    outcome = await run_log_loop(process, idle_timeout_seconds=0.05)
    await closer

    assert outcome.stop_reason is StopReason.STREAMS_CLOSED
    assert outcome.result.error_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unrecorded_lines_do_not_reset_idle_clock() -> None:
    process = _FakeProcess()
    process.stdout.push(*PREAMBLE)

    async def _chatter() -> None:
        while True:
            await asyncio.sleep(0.02)
            process.stdout.push("junk line without keywords")

    chatter = asyncio.create_task(_chatter())
    try:
        outcome = await asyncio.wait_for(run_log_loop(process, idle_timeout_seconds=0.15), 5.0)
    finally:
        chatter.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await chatter

    assert outcome.stop_reason is StopReason.IDLE_TIMEOUT
    assert process.reap_calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_closed_streams_end_the_loop() -> None:
    process = _FakeProcess()
    process.stdout.push("Server started.", "", "   ", "[INFO] [General] done")
    process.stdout.close()
    process.stderr.close()

    outcome = await run_log_loop(process, idle_timeout_seconds=10.0)

    assert outcome.stop_reason is StopReason.STREAMS_CLOSED
    assert [item.text for item in outcome.result.info] == ["[INFO] [General] done"]
    assert process.terminate_calls == 1
    assert process.reap_calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_event_stops_interactive_loop() -> None:
    process = _FakeProcess()
    cancel = asyncio.Event()
    seen: list[tuple[StreamName, str, bool]] = []

    def _observe(stream: StreamName, line: str, outcome: LineOutcome) -> None:
        seen.append((stream, line, outcome.recorded))
        if "Server started." in line:
            cancel.set()

    process.stderr.push("Server started.")

    outcome = await run_log_loop(
        process,
        idle_timeout_seconds=None,
        cancel_event=cancel,
        on_line=_observe,
    )

    assert outcome.stop_reason is StopReason.CANCELLED
    assert seen == [("stderr", "Server started.", False)]
    assert outcome.final_phase.started
    assert process.terminate_calls == 1
    assert process.reap_calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stream_error_propagates_after_reap() -> None:
    process = _FakeProcess()
    process.stdout.fail(OSError("pipe broke"))

    with pytest.raises(OSError, match="pipe broke"):
        await run_log_loop(process, idle_timeout_seconds=1.0)

    assert process.terminate_calls == 1
    assert process.reap_calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_observer_error_still_reaps_process() -> None:
    process = _FakeProcess()
    process.stdout.push("Server started.")

    def _explode(stream: StreamName, line: str, outcome: LineOutcome) -> None:
        raise RuntimeError("observer failed")

    with pytest.raises(RuntimeError, match="observer failed"):
        await run_log_loop(process, idle_timeout_seconds=1.0, on_line=_explode)

    assert process.reap_calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fresh_runs_are_independent() -> None:
    lines = (*PREAMBLE, "[WARN] [Molang] odd")
    results = []
    for _ in range(2):
        process = _FakeProcess()
        process.stdout.push(*lines)
        process.stdout.close()
        process.stderr.close()
        outcome = await run_log_loop(process, idle_timeout_seconds=1.0)
        results.append(outcome.result)

    assert results[0] == results[1]
    assert results[0].warning_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("timeout", [0, -1.0, float("nan")])
async def test_invalid_idle_timeout_still_reaps_process(timeout: float) -> None:
    process = _FakeProcess()

    with pytest.raises(ValueError, match="timeout_seconds"):
        await run_log_loop(process, idle_timeout_seconds=timeout)

    assert process.terminate_calls == 1
    assert process.reap_calls == 1
