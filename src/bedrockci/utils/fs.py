"""
bedrockci — filesystem utilities

File: src/bedrockci/utils/fs.py

Purpose
- Atomic writes for the world pack configuration files.
- Guarded replacement of previously installed test packs.
- Containment checks for archive extraction.

Functional requirements
- Atomic writes use temp files in the destination directory and replace in a single step.
- Deletion refuses paths outside the given root.
- ``contained_path`` never touches the filesystem; it is safe for paths that do not exist yet.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "contained_path",
    "remove_within",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        mode = "wb" if isinstance(data, bytes) else "w"
        with os.fdopen(fd, mode, encoding=None if isinstance(data, bytes) else encoding) as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def remove_within(path: PathLike, root: PathLike) -> bool:
    """
    Remove ``path`` (file, directory tree or symlink) if it exists inside ``root``.

    Symlinks are unlinked without traversing into their targets. Returns
    ``True`` when something was removed.
    """

    base = Path(root).resolve(strict=True)
    target = Path(path)
    if not target.exists() and not target.is_symlink():
        return False

    candidate = target.parent.resolve(strict=True) / target.name
    if not _is_relative_to(candidate, base):
        raise ValueError(f"refusing to delete path outside {base!s}: {target!s}")

    if target.is_symlink() or not target.is_dir():
        target.unlink()
    else:
        shutil.rmtree(target)
    return True


def contained_path(root: PathLike, member: str) -> Path:
    """
    Join an archive member name onto ``root``, rejecting escapes.

    Absolute names, drive-qualified names and ``..`` segments raise ``ValueError``.
    """

    normalized = member.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute() or (relative.parts and ":" in relative.parts[0]):
        raise ValueError(f"absolute archive member: {member!r}")
    if any(part == ".." for part in relative.parts):
        raise ValueError(f"archive member escapes target: {member!r}")

    base = Path(root)
    joined = base.joinpath(*relative.parts) if relative.parts else base
    return joined


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True
