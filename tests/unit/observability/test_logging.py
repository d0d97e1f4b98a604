"""
bedrockci — unit tests for observability logging

File: tests/unit/observability/test_logging.py

Purpose
- Validate structured JSON logging with correlation metadata and queue-backed reliability.

What this test file should cover
- JSON line validity and correlation field propagation.
- Extra fields are normalized (enums, paths, non-finite floats).
- Multi-threaded logging stability.
- Queue drain/shutdown behavior and config wrapper.

Non-functional requirements
- Deterministic and non-flaky.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from bedrockci.observability.logging import (
    LoggingConfig,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)
from bedrockci.validation.models import StopReason

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"bedrockci.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


@pytest.mark.unit
def test_json_lines_carry_run_id_correlation_and_fields(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-fields", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(command="validate", server_version="1.21.0"):
        logger.info(
            "run loop stopped",
            extra={
                "stop_reason": StopReason.IDLE_TIMEOUT,
                "server_dir": tmp_path / "server",
                "ratio": float("inf"),
                "counts": (1, 2),
            },
        )
    logger.info("outside scope")

    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "run-fields" / "bedrockci.jsonl"
    first, second = _read_json_lines(handle.log_path)
    assert first["run_id"] == "run-fields"
    assert first["command"] == "validate"
    assert first["server_version"] == "1.21.0"
    assert first["message"] == "run loop stopped"
    assert first["level"] == "INFO"
    assert first["fields"] == {
        "stop_reason": "idle_timeout",
        "server_dir": str(tmp_path / "server"),
        "ratio": "<non-finite>",
        "counts": [1, 2],
    }
    assert str(first["timestamp"]).endswith("Z")
    assert "command" not in second
    assert "fields" not in second


@pytest.mark.unit
def test_correlation_scope_nests_and_restores() -> None:
    assert get_correlation_context() == {}
    with correlation_scope(command="run"):
        with correlation_scope(server_version="1.21.0", command=None):
            assert get_correlation_context() == {"server_version": "1.21.0"}
        assert get_correlation_context() == {"command": "run"}
    assert get_correlation_context() == {}

    with pytest.raises(ValueError, match="must not be empty"):
        with correlation_scope(**{" ": "x"}):
            pass


@pytest.mark.unit
def test_setup_logging_wrapper_uses_observability_config(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_logging(
        {"log_level": "WARNING", "log_dir": str(tmp_path), "log_to_stderr": False},
        run_id="run-wrapper",
        logger_name=logger_name,
    )

    handle.logger.info("filtered")
    handle.logger.warning("kept")
    shutdown_logging()

    parsed = _read_json_lines(tmp_path / "run-wrapper" / "bedrockci.jsonl")
    assert [item["message"] for item in parsed] == ["kept"]
    assert get_active_logging_handle() is None


@pytest.mark.unit
def test_log_dir_argument_overrides_config(tmp_path: Path) -> None:
    handle = setup_logging(
        {"log_dir": str(tmp_path / "ignored")},
        run_id="run-override",
        log_dir=tmp_path / "chosen",
        logger_name=_logger_name(),
    )

    assert handle.run_log_dir == tmp_path / "chosen" / "run-override"
    assert get_active_logging_handle() is handle


@pytest.mark.unit
def test_multithreaded_logging_produces_valid_json_lines(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            run_id="run-threaded",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            queue_size=4096,
        )
    )
    logger = logging.getLogger(logger_name)

    total_threads = 8
    per_thread = 40

    def worker(thread_idx: int) -> None:
        for i in range(per_thread):
            logger.info("server line", extra={"stream": "stdout", "line": f"{thread_idx}-{i}"})

    threads = [threading.Thread(target=worker, args=(idx,)) for idx in range(total_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    shutdown_logging(handle)

    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == total_threads * per_thread
    assert all(item["fields"]["stream"] == "stdout" for item in parsed)  # type: ignore[index]


@pytest.mark.unit
def test_queue_handler_non_blocking_and_shutdown_flushes(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            run_id="run-flush",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            queue_size=10_000,
        )
    )
    logger = logging.getLogger(logger_name)

    queue_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.QueueHandler)]
    assert queue_handlers, "expected queue-backed non-blocking logging"

    expected = 300
    for i in range(expected):
        logger.info("message %s", i)

    shutdown_logging(handle)
    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert handle.dropped_records == 0
    assert handle.is_shutdown
    assert len(lines) == expected


@pytest.mark.unit
def test_new_setup_replaces_active_handle(tmp_path: Path) -> None:
    first = setup_structured_logging(
        LoggingConfig(run_id="run-one", base_log_dir=tmp_path, logger_name=_logger_name())
    )
    second = setup_structured_logging(
        LoggingConfig(run_id="run-two", base_log_dir=tmp_path, logger_name=_logger_name())
    )

    assert first.is_shutdown
    assert get_active_logging_handle() is second


@pytest.mark.unit
@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"run_id": "a/b"}, "path separators"),
        ({"run_id": "  "}, "must not be empty"),
        ({"queue_size": 0}, "queue_size must be > 0"),
        ({"log_filename": "logs/x.jsonl"}, "path separators"),
        ({"level": "LOUD"}, "unsupported logging level"),
    ],
)
def test_invalid_logging_config(tmp_path: Path, overrides: dict[str, object], message: str) -> None:
    values: dict[str, object] = {"run_id": "run-bad", "base_log_dir": tmp_path}
    values.update(overrides)
    with pytest.raises(ValueError, match=message):
        setup_structured_logging(LoggingConfig(**values))  # type: ignore[arg-type]
