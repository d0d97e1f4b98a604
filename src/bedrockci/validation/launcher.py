"""
bedrockci — dedicated server process launcher.

File: src/bedrockci/validation/launcher.py

Purpose
- Make the server executable, spawn it with both output streams captured,
  and hand back a handle that can always be terminated and reaped.

Functional requirements
- Every failure before a usable handle exists raises ``ServerStartFailed``.
- ``terminate`` is best-effort and idempotent; ``reap`` waits for exit.
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat
from collections.abc import Mapping
from contextlib import suppress
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

from bedrockci.constants import SERVER_EXECUTABLE_NAME
from bedrockci.validation.errors import InvalidServerPath, ServerStartFailed

logger = logging.getLogger(__name__)

_STREAM_LIMIT_BYTES: Final[int] = 1 << 20
_EXECUTE_BITS: Final[int] = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


@runtime_checkable
class LineSource(Protocol):
    """Anything with ``asyncio.StreamReader.readline`` semantics (b"" at EOF)."""

    async def readline(self) -> bytes: ...


@runtime_checkable
class ServerProcess(Protocol):
    """Handle the run loop needs: two line sources plus terminate and reap."""

    @property
    def pid(self) -> int: ...

    @property
    def stdout(self) -> LineSource: ...

    @property
    def stderr(self) -> LineSource: ...

    def terminate(self) -> None: ...

    async def reap(self) -> int | None: ...


class ManagedProcess:
    """Exclusive owner of one spawned server child process."""

    def __init__(self, process: asyncio.subprocess.Process, *, executable: Path) -> None:
        if process.stdout is None:
            raise ServerStartFailed("Failed to capture server stdout")
        if process.stderr is None:
            raise ServerStartFailed("Failed to capture server stderr")
        self._process = process
        self._stdout: asyncio.StreamReader = process.stdout
        self._stderr: asyncio.StreamReader = process.stderr
        self.executable = executable

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def stdout(self) -> asyncio.StreamReader:
        return self._stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        return self._stderr

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    def terminate(self) -> None:
        """Kill the child if it is still running."""

        if self._process.returncode is not None:
            return
        with suppress(ProcessLookupError):
            self._process.kill()

    async def reap(self) -> int | None:
        """Wait for the child to exit and release its resources."""

        code = await self._process.wait()
        logger.info("server process reaped", extra={"pid": self.pid, "exit_code": code})
        return code


def resolve_executable(server_dir: str | Path, *, executable_name: str = SERVER_EXECUTABLE_NAME) -> Path:
    """Return the server executable path inside ``server_dir``."""

    directory = Path(server_dir)
    if not directory.is_dir():
        raise InvalidServerPath(f"Server path does not exist or is not a directory: {directory}")
    executable = directory / executable_name
    if not executable.is_file():
        raise ServerStartFailed(f"{executable_name} executable not found in {directory}")
    return executable


def ensure_executable(path: Path) -> None:
    """Add execute permission bits to ``path`` when any are missing."""

    try:
        mode = path.stat().st_mode
        if mode & _EXECUTE_BITS != _EXECUTE_BITS:
            path.chmod(mode | _EXECUTE_BITS)
    except OSError as exc:
        raise ServerStartFailed(f"Failed to make server executable: {exc}") from exc


async def launch_server(
    server_dir: str | Path,
    *,
    executable_name: str = SERVER_EXECUTABLE_NAME,
    env: Mapping[str, str] | None = None,
) -> ManagedProcess:
    """Spawn the dedicated server with ``server_dir`` as working directory."""

    executable = resolve_executable(server_dir, executable_name=executable_name)
    ensure_executable(executable)

    child_env: dict[str, str] | None = None
    if env is not None:
        child_env = dict(os.environ)
        child_env.update(env)

    try:
        process = await asyncio.create_subprocess_exec(
            str(executable),
            cwd=str(executable.parent),
            env=child_env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=_STREAM_LIMIT_BYTES,
            # Own process group: a terminal Ctrl+C reaches only us, and we kill the child.
            start_new_session=True,
        )
    except OSError as exc:
        raise ServerStartFailed(f"Failed to start server: {exc}") from exc

    try:
        managed = ManagedProcess(process, executable=executable)
    except ServerStartFailed:
        with suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        raise

    logger.info("server process spawned", extra={"pid": managed.pid, "executable": str(executable)})
    return managed


__all__ = [
    "LineSource",
    "ManagedProcess",
    "ServerProcess",
    "ensure_executable",
    "launch_server",
    "resolve_executable",
]
