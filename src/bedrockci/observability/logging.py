"""
bedrockci — per-run structured logging.

File: src/bedrockci/observability/logging.py

Purpose
- Write one JSON object per log record to ``<log_dir>/<run_id>/bedrockci.jsonl``.
- Stamp every record with the run id plus whatever ``correlation_scope`` has bound
  (``command``, ``server_version``).

Records are handed to a bounded queue and written by a ``QueueListener`` thread, so the
asyncio run loop never blocks on disk. When the queue is full the record is dropped and
counted instead of stalling the caller.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import sys
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Final

from bedrockci.validation.models import JSONValue

LOG_FILENAME: Final[str] = "bedrockci.jsonl"
ROOT_LOGGER_NAME: Final[str] = "bedrockci"
DEFAULT_LOG_DIR: Final[str] = ".bedrockci/logs"

_CORRELATION_FIELDS: Final[frozenset[str]] = frozenset({"run_id", "command", "server_version"})
# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "correlation", "taskName"}

_correlation: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "bedrockci_correlation", default=()
)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Settings for one run's structured log."""

    run_id: str
    base_log_dir: Path | str = Path(DEFAULT_LOG_DIR)
    logger_name: str = ROOT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = LOG_FILENAME
    log_to_stderr: bool = False


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = ROOT_LOGGER_NAME,
) -> StructuredLoggingHandle:
    """Configure structured logging from the ``[observability]`` config section.

    ``log_dir`` wins over the section's ``log_dir`` when given.
    """

    section = dict(observability_config or {})
    level = section.get("log_level", "INFO")
    base_dir = log_dir if log_dir is not None else section.get("log_dir", DEFAULT_LOG_DIR)
    return setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=base_dir if isinstance(base_dir, (str, Path)) else DEFAULT_LOG_DIR,
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stderr=bool(section.get("log_to_stderr", False)),
        )
    )


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # The listener thread cannot see this thread's contextvars.
        record.correlation = get_correlation_context()
        prepared: logging.LogRecord = super().prepare(record)
        return prepared

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, run_id: str) -> None:
        super().__init__()
        self._run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _utc_iso(record.created, timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": self._run_id,
        }
        event.update(getattr(record, "correlation", {}))
        for name in _CORRELATION_FIELDS:
            value = getattr(record, name, None)
            if isinstance(value, str) and value.strip():
                event[name] = value.strip()

        extras = {
            key: _to_json(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES
            and key not in _CORRELATION_FIELDS
            and not key.startswith("_")
        }
        if extras:
            event["fields"] = extras
        if record.exc_info:
            event["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            event["stack"] = record.stack_info
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(slots=True, eq=False)
class StructuredLoggingHandle:
    """Live logging setup for one run; ``shutdown`` drains and closes it."""

    logger: logging.Logger
    run_id: str
    run_log_dir: Path
    log_path: Path
    _queue: queue.Queue[logging.LogRecord]
    _queue_handler: _DroppingQueueHandler
    _sinks: tuple[logging.Handler, ...]
    _listener: logging.handlers.QueueListener
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _closed: bool = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.close()
            self._closed = True


class _ActiveHandle:
    """Process-wide slot for the handle the CLI installed last."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handle: StructuredLoggingHandle | None = None
        self._atexit_hooked = False

    def get(self) -> StructuredLoggingHandle | None:
        with self._lock:
            return self._handle

    def swap(self, handle: StructuredLoggingHandle | None) -> StructuredLoggingHandle | None:
        with self._lock:
            previous, self._handle = self._handle, handle
            if handle is not None and not self._atexit_hooked:
                atexit.register(shutdown_logging)
                self._atexit_hooked = True
            return previous

    def clear_if(self, handle: StructuredLoggingHandle) -> None:
        with self._lock:
            if self._handle is handle:
                self._handle = None


_active = _ActiveHandle()


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install queue-backed JSON-lines logging for a single run.

    Any previously installed handle is shut down first, so exactly one run log is open.
    """

    run_id = _single_path_part(config.run_id, "run_id")
    log_filename = _single_path_part(config.log_filename, "log_filename")
    if not isinstance(config.queue_size, int) or config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    level = _level_number(config.level)

    previous = _active.swap(None)
    if previous is not None:
        previous.shutdown()

    run_log_dir = Path(config.base_log_dir) / run_id
    run_log_dir.mkdir(parents=True, exist_ok=True)
    log_path = run_log_dir / log_filename

    formatter = _JsonLinesFormatter(run_id)
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler(sys.stderr))
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(config.logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _DroppingQueueHandler(log_queue)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        run_log_dir=run_log_dir,
        log_path=log_path,
        _queue=log_queue,
        _queue_handler=queue_handler,
        _sinks=tuple(sinks),
        _listener=listener,
    )
    _active.swap(handle)
    return handle


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Drain and close ``handle``, or the active handle when none is given."""

    target = handle if handle is not None else _active.get()
    if target is None:
        return
    target.shutdown(timeout_seconds=timeout_seconds)
    _active.clear_if(target)


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    return _active.get()


def get_correlation_context() -> dict[str, str]:
    """Return the correlation fields bound in the current context."""

    return dict(_correlation.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for records logged inside the block.

    Passing ``None`` or a blank value unbinds a field inherited from an outer scope.
    """

    bound = get_correlation_context()
    for raw_key, value in fields.items():
        key = raw_key.strip()
        if not key:
            raise ValueError("correlation key must not be empty")
        if value is None or not value.strip():
            bound.pop(key, None)
        else:
            bound[key] = value.strip()
    token = _correlation.set(tuple(bound.items()))
    try:
        yield
    finally:
        _correlation.reset(token)


def _single_path_part(value: str, name: str) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise ValueError(f"{name} must not be empty")
    if Path(text).name != text:
        raise ValueError(f"{name} must not include path separators")
    return text


def _level_number(value: int | str) -> int:
    if isinstance(value, int):
        return value
    number = logging.getLevelName(value.strip().upper())
    if not isinstance(number, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return number


def _utc_iso(epoch_seconds: float, *, timespec: str) -> str:
    moment = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return moment.isoformat(timespec=timespec).replace("+00:00", "Z")


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else "<non-finite>"
    if isinstance(value, Enum):
        return _to_json(value.value)
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return _utc_iso(aware.timestamp(), timespec="microseconds")
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_json(item) for item in value]
    return repr(value)


__all__ = [
    "LOG_FILENAME",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
