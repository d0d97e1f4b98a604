"""
bedrockci — unit tests for the test pack installer

File: tests/unit/packs/test_installer.py

Purpose
- Validate manifest parsing, copy and symlink installs, and world config synthesis.

What this test file should cover
- Bad server/pack directories and bad manifests map to the right error kinds.
- Reinstalling replaces the previous test pack instead of merging into it.
- World config files list the pack UUID and version.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from bedrockci.packs.installer import (
    InstallMode,
    PackHeader,
    copy_test_packs,
    create_world_pack_configs,
    install_test_packs,
    read_pack_manifest,
    symlink_test_packs,
)
from bedrockci.validation.errors import InvalidPackPath, InvalidServerPath, PackCopyFailed

BP_UUID = "5f8c3c1e-0000-4000-8000-000000000001"
RP_UUID = "5f8c3c1e-0000-4000-8000-000000000002"


def _make_pack(root: Path, name: str, uuid: str, version: list[int]) -> Path:
    pack = root / name
    (pack / "scripts").mkdir(parents=True)
    manifest = {"format_version": 2, "header": {"name": name, "uuid": uuid, "version": version}}
    (pack / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")
    (pack / "scripts" / "main.js").write_text("// entry\n", encoding="utf-8")
    return pack


@pytest.fixture
def layout(tmp_path: Path) -> tuple[Path, Path, Path]:
    server = tmp_path / "server" / "1.21.0"
    server.mkdir(parents=True)
    bp = _make_pack(tmp_path / "packs", "bp", BP_UUID, [1, 0, 0])
    rp = _make_pack(tmp_path / "packs", "rp", RP_UUID, [0, 2, 3])
    return server, bp, rp


@pytest.mark.unit
class TestReadPackManifest:
    def test_reads_header(self, layout: tuple[Path, Path, Path]) -> None:
        _, bp, _ = layout
        assert read_pack_manifest(bp) == PackHeader(uuid=BP_UUID, version=(1, 0, 0))

    def test_missing_manifest(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidPackPath, match="manifest.json not found"):
            read_pack_manifest(tmp_path)

    def test_invalid_json(self, tmp_path: Path) -> None:
        (tmp_path / "manifest.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(PackCopyFailed, match="Failed to parse manifest.json"):
            read_pack_manifest(tmp_path)

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"format_version": 2},
            {"header": {"uuid": "", "version": [1, 0, 0]}},
            {"header": {"uuid": BP_UUID, "version": "1.0.0"}},
            {"header": {"uuid": BP_UUID, "version": [1, True, 0]}},
            {"header": {"uuid": BP_UUID, "version": [1, -1, 0]}},
        ],
    )
    def test_invalid_header(self, tmp_path: Path, payload: object) -> None:
        (tmp_path / "manifest.json").write_text(json.dumps(payload), encoding="utf-8")
        with pytest.raises(PackCopyFailed):
            read_pack_manifest(tmp_path)


@pytest.mark.unit
def test_copy_install_places_packs_and_world_configs(layout: tuple[Path, Path, Path]) -> None:
    server, bp, rp = layout

    installed = copy_test_packs(server, bp_path=bp, rp_path=rp)

    assert installed.mode is InstallMode.COPY
    assert installed.behavior_pack == server / "behavior_packs" / "TESTING_PACK_BP"
    assert installed.resource_pack == server / "resource_packs" / "TESTING_PACK_RP"
    assert (installed.behavior_pack / "scripts" / "main.js").is_file()
    assert not installed.behavior_pack.is_symlink()

    world = server / "worlds" / "Bedrock level"
    behavior_config = json.loads((world / "world_behavior_packs.json").read_text(encoding="utf-8"))
    resource_config = json.loads((world / "world_resource_packs.json").read_text(encoding="utf-8"))
    assert behavior_config == [{"pack_id": BP_UUID, "version": [1, 0, 0]}]
    assert resource_config == [{"pack_id": RP_UUID, "version": [0, 2, 3]}]


@pytest.mark.unit
def test_reinstall_replaces_previous_pack(layout: tuple[Path, Path, Path]) -> None:
    server, bp, rp = layout
    first = copy_test_packs(server, bp_path=bp, rp_path=rp)
    (first.behavior_pack / "stale.txt").write_text("left over", encoding="utf-8")

    second = copy_test_packs(server, bp_path=bp, rp_path=rp)

    assert not (second.behavior_pack / "stale.txt").exists()
    assert (second.behavior_pack / "manifest.json").is_file()


@pytest.mark.unit
@pytest.mark.skipif(os.name != "posix", reason="symlinks need POSIX semantics")
def test_symlink_install_points_at_absolute_source(
    layout: tuple[Path, Path, Path], monkeypatch: pytest.MonkeyPatch
) -> None:
    server, bp, rp = layout
    monkeypatch.chdir(bp.parent)

    installed = symlink_test_packs(server, bp_path="bp", rp_path="rp")

    assert installed.behavior_pack.is_symlink()
    target = Path(os.readlink(installed.behavior_pack))
    assert target.is_absolute()
    assert target == bp.resolve()

    # Switching back to copy mode must replace the link, not write through it.
    copied = install_test_packs(server, bp_path=bp, rp_path=rp, mode=InstallMode.COPY)
    assert not copied.behavior_pack.is_symlink()
    assert (bp / "manifest.json").is_file()


@pytest.mark.unit
def test_missing_server_directory(layout: tuple[Path, Path, Path], tmp_path: Path) -> None:
    _, bp, rp = layout
    with pytest.raises(InvalidServerPath):
        copy_test_packs(tmp_path / "nowhere", bp_path=bp, rp_path=rp)


@pytest.mark.unit
def test_missing_pack_directories(layout: tuple[Path, Path, Path], tmp_path: Path) -> None:
    server, bp, rp = layout
    with pytest.raises(InvalidPackPath, match="Behavior pack path"):
        copy_test_packs(server, bp_path=tmp_path / "nobp", rp_path=rp)
    with pytest.raises(InvalidPackPath, match="Resource pack path"):
        copy_test_packs(server, bp_path=bp, rp_path=tmp_path / "norp")


@pytest.mark.unit
def test_create_world_pack_configs_returns_both_paths(tmp_path: Path) -> None:
    behavior, resource = create_world_pack_configs(
        tmp_path,
        PackHeader(uuid=BP_UUID, version=(1, 2, 3)),
        PackHeader(uuid=RP_UUID, version=(4, 5, 6)),
    )

    assert behavior.name == "world_behavior_packs.json"
    assert resource.name == "world_resource_packs.json"
    assert behavior.read_text(encoding="utf-8").endswith("]\n")
    assert json.loads(resource.read_text(encoding="utf-8"))[0]["version"] == [4, 5, 6]
