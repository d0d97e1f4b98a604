"""Executable CLI entrypoint for ``bedrockci``.

Every failure leaves the process through one of the ``ExitCode`` values so CI jobs can
tell a failed validation apart from a broken setup or a server that would not start.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

from bedrockci.config import ConfigLoadError, ConfigValidationError
from bedrockci.server import EulaNotAccepted, ServerDownloadError
from bedrockci.validation import (
    InvalidPackPath,
    InvalidServerPath,
    PackCopyFailed,
    ServerStartFailed,
    ValidationFailed,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Process exit-code contract."""

    SUCCESS = 0
    VALIDATION_FAILED = 1
    CONFIG_ERROR = 2
    SERVER_ERROR = 3
    INTERNAL_ERROR = 4


# First match along the exception chain wins.
_EXIT_ROUTES: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
    ((ValidationFailed,), ExitCode.VALIDATION_FAILED),
    (
        (
            ConfigLoadError,
            ConfigValidationError,
            InvalidServerPath,
            InvalidPackPath,
            EulaNotAccepted,
        ),
        ExitCode.CONFIG_ERROR,
    ),
    ((ServerStartFailed, PackCopyFailed, ServerDownloadError), ExitCode.SERVER_ERROR),
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m bedrockci`` and the console script."""

    try:
        from bedrockci.ui.cli import run_cli

        return _as_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _as_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - CLI boundary normalization.
        code = _route_exception(exc)
        _emit_failure(exc, code)
        return int(code)


def _as_exit_code(raw: object) -> int:
    if raw is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw, int) and raw in set(ExitCode):
        return raw
    if isinstance(raw, str) and raw.strip():
        _write_stderr(raw.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _route_exception(exc: BaseException) -> ExitCode:
    for item in _exception_chain(exc):
        for types, code in _EXIT_ROUTES:
            if isinstance(item, types):
                return code
    return ExitCode.INTERNAL_ERROR


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def _emit_failure(exc: BaseException, code: ExitCode) -> None:
    if code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    _write_stderr(f"error: {str(exc).strip() or type(exc).__name__}")


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint"]
