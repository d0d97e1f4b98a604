"""
bedrockci — test pack installer

File: src/bedrockci/packs/installer.py

Purpose
- Read behavior/resource pack manifests.
- Install both packs into a server directory under fixed testing names, by
  recursive copy (CI validation) or absolute symlink (interactive runs).
- Synthesize the world pack configuration files that activate them.

Functional requirements
- A previous test install is removed before the new one is placed.
- Missing directories or manifests raise ``InvalidPackPath`` / ``InvalidServerPath``.
- Any I/O or manifest decoding failure raises ``PackCopyFailed``.
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from bedrockci.constants import (
    BEHAVIOR_PACKS_DIR,
    PACK_MANIFEST_FILE,
    RESOURCE_PACKS_DIR,
    TESTING_BP_NAME,
    TESTING_RP_NAME,
    WORLD_BEHAVIOR_PACKS_FILE,
    WORLD_DIR,
    WORLD_RESOURCE_PACKS_FILE,
)
from bedrockci.utils.fs import atomic_write, remove_within
from bedrockci.validation.errors import InvalidPackPath, InvalidServerPath, PackCopyFailed
from bedrockci.validation.models import JSONValue

logger = logging.getLogger(__name__)


class InstallMode(StrEnum):
    COPY = "copy"
    SYMLINK = "symlink"


@dataclass(frozen=True, slots=True)
class PackHeader:
    """``header`` block of a pack ``manifest.json``."""

    uuid: str
    version: tuple[int, ...]

    def world_entry(self) -> dict[str, JSONValue]:
        return {"pack_id": self.uuid, "version": list(self.version)}


@dataclass(frozen=True, slots=True)
class InstalledPacks:
    mode: InstallMode
    behavior_pack: Path
    resource_pack: Path
    behavior_header: PackHeader
    resource_header: PackHeader


def read_pack_manifest(pack_dir: str | Path) -> PackHeader:
    manifest_path = Path(pack_dir) / PACK_MANIFEST_FILE
    if not manifest_path.is_file():
        raise InvalidPackPath(f"{PACK_MANIFEST_FILE} not found in {pack_dir}")

    try:
        raw = json.loads(manifest_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise PackCopyFailed(f"Failed to read {PACK_MANIFEST_FILE}: {exc}") from exc
    except ValueError as exc:
        raise PackCopyFailed(f"Failed to parse {PACK_MANIFEST_FILE}: {exc}") from exc

    header = raw.get("header") if isinstance(raw, dict) else None
    if not isinstance(header, dict):
        raise PackCopyFailed(f"Failed to parse {PACK_MANIFEST_FILE}: missing header object")
    uuid = header.get("uuid")
    if not isinstance(uuid, str) or not uuid:
        raise PackCopyFailed(f"Failed to parse {PACK_MANIFEST_FILE}: header.uuid must be a string")
    version = header.get("version")
    if (
        not isinstance(version, list)
        or not version
        or any(isinstance(part, bool) or not isinstance(part, int) or part < 0 for part in version)
    ):
        raise PackCopyFailed(
            f"Failed to parse {PACK_MANIFEST_FILE}: header.version must be a list of non-negative integers"
        )
    return PackHeader(uuid=uuid, version=tuple(version))


def install_test_packs(
    server_dir: str | Path,
    *,
    bp_path: str | Path,
    rp_path: str | Path,
    mode: InstallMode = InstallMode.COPY,
) -> InstalledPacks:
    """Place both packs into ``server_dir`` and activate them in the world."""

    server = Path(server_dir)
    behavior_source = Path(bp_path)
    resource_source = Path(rp_path)
    if not server.is_dir():
        raise InvalidServerPath(f"Server path does not exist or is not a directory: {server}")
    if not behavior_source.is_dir():
        raise InvalidPackPath(
            f"Behavior pack path does not exist or is not a directory: {behavior_source}"
        )
    if not resource_source.is_dir():
        raise InvalidPackPath(
            f"Resource pack path does not exist or is not a directory: {resource_source}"
        )

    behavior_header = read_pack_manifest(behavior_source)
    resource_header = read_pack_manifest(resource_source)

    behavior_target = server / BEHAVIOR_PACKS_DIR / TESTING_BP_NAME
    resource_target = server / RESOURCE_PACKS_DIR / TESTING_RP_NAME
    _place(behavior_source, behavior_target, server=server, mode=mode, label="BP")
    _place(resource_source, resource_target, server=server, mode=mode, label="RP")
    create_world_pack_configs(server, behavior_header, resource_header)

    logger.info(
        "test packs installed",
        extra={
            "mode": mode.value,
            "server_dir": str(server),
            "bp_uuid": behavior_header.uuid,
            "rp_uuid": resource_header.uuid,
        },
    )
    return InstalledPacks(
        mode=mode,
        behavior_pack=behavior_target,
        resource_pack=resource_target,
        behavior_header=behavior_header,
        resource_header=resource_header,
    )


def copy_test_packs(
    server_dir: str | Path, *, bp_path: str | Path, rp_path: str | Path
) -> InstalledPacks:
    return install_test_packs(server_dir, bp_path=bp_path, rp_path=rp_path, mode=InstallMode.COPY)


def symlink_test_packs(
    server_dir: str | Path, *, bp_path: str | Path, rp_path: str | Path
) -> InstalledPacks:
    return install_test_packs(
        server_dir, bp_path=bp_path, rp_path=rp_path, mode=InstallMode.SYMLINK
    )


def create_world_pack_configs(
    server_dir: str | Path, behavior_header: PackHeader, resource_header: PackHeader
) -> tuple[Path, Path]:
    """Write ``world_behavior_packs.json`` and ``world_resource_packs.json``."""

    world_dir = Path(server_dir) / WORLD_DIR
    try:
        world_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise PackCopyFailed(f"Failed to create world directory: {exc}") from exc

    written: list[Path] = []
    for filename, header, label in (
        (WORLD_BEHAVIOR_PACKS_FILE, behavior_header, "BP"),
        (WORLD_RESOURCE_PACKS_FILE, resource_header, "RP"),
    ):
        target = world_dir / filename
        payload = json.dumps([header.world_entry()], indent=2) + "\n"
        try:
            atomic_write(target, payload)
        except OSError as exc:
            raise PackCopyFailed(f"Failed to write {label} config: {exc}") from exc
        written.append(target)
    return written[0], written[1]


def _place(source: Path, target: Path, *, server: Path, mode: InstallMode, label: str) -> None:
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise PackCopyFailed(f"Failed to create {label} directory: {exc}") from exc

    try:
        remove_within(target, server)
    except (OSError, ValueError) as exc:
        raise PackCopyFailed(f"Failed to remove existing {label}: {exc}") from exc

    try:
        if mode is InstallMode.SYMLINK:
            target.symlink_to(source.resolve(), target_is_directory=True)
        else:
            shutil.copytree(source, target)
    except (OSError, shutil.Error) as exc:
        raise PackCopyFailed(f"Failed to {mode.value} {label}: {exc}") from exc


__all__ = [
    "InstallMode",
    "InstalledPacks",
    "PackHeader",
    "copy_test_packs",
    "create_world_pack_configs",
    "install_test_packs",
    "read_pack_manifest",
    "symlink_test_packs",
]
