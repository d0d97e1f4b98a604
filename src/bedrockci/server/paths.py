"""
bedrockci — installed server lookup

File: src/bedrockci/server/paths.py

Purpose
- Resolve the directory holding downloaded server versions.
- List installed versions and pick the one a run should use.

Functional requirements
- An explicit root wins over ``BEDROCK_SERVER_PATH``, which wins over the default.
- Versions sort by dotted numeric value, so "1.21.10" is newer than "1.21.9".
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path

from bedrockci.constants import DEFAULT_SERVER_ROOT, LATEST_VERSION, SERVER_ROOT_ENV
from bedrockci.validation.errors import InvalidServerPath

logger = logging.getLogger(__name__)

_NUMERIC_PART = re.compile(r"\d+")


class ServerNotInstalled(InvalidServerPath):
    """No server is installed at the root, or the requested version is missing."""


def get_server_root(
    configured: str | Path | None = None, *, env: Mapping[str, str] | None = None
) -> Path:
    if configured is not None and str(configured).strip():
        return Path(configured).expanduser()
    source = os.environ if env is None else env
    override = source.get(SERVER_ROOT_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return Path(DEFAULT_SERVER_ROOT).expanduser()


def version_key(name: str) -> tuple[tuple[int, ...], str]:
    """Sort key for a version directory name; non-numeric names sort first."""

    return tuple(int(part) for part in _NUMERIC_PART.findall(name)), name


def list_servers(root: str | Path) -> list[str]:
    """Installed versions under ``root``, oldest first."""

    base = Path(root)
    if not base.exists():
        return []
    if not base.is_dir():
        raise InvalidServerPath(f"Server root is not a directory: {base}")
    names = [
        entry.name for entry in base.iterdir() if entry.is_dir() and not entry.name.startswith(".")
    ]
    return sorted(names, key=version_key)


def resolve_server_dir(root: str | Path, version: str | None = None) -> Path:
    """Directory of ``version`` under ``root``; ``None``/"latest" means newest installed."""

    base = Path(root)
    if version is None or version == LATEST_VERSION:
        installed = list_servers(base)
        if not installed:
            raise ServerNotInstalled(
                f"No server installed in {base}; run 'bedrockci download' first"
            )
        selected = installed[-1]
        logger.info("selected newest installed server", extra={"version": selected})
    else:
        selected = version

    server_dir = base / selected
    if not server_dir.is_dir():
        raise ServerNotInstalled(f"Server version {selected} is not installed in {base}")
    return server_dir


__all__ = [
    "ServerNotInstalled",
    "get_server_root",
    "list_servers",
    "resolve_server_dir",
    "version_key",
]
