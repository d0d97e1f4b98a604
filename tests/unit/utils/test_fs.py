from __future__ import annotations

import os
from pathlib import Path

import pytest

from bedrockci.utils.fs import atomic_write, contained_path, remove_within


@pytest.mark.unit
def test_atomic_write_replaces_and_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "world_behavior_packs.json"
    target.write_text("old", encoding="utf-8")

    atomic_write(target, "[]\n")
    atomic_write(tmp_path / "blob.bin", b"\x00\x01")

    assert target.read_text(encoding="utf-8") == "[]\n"
    assert (tmp_path / "blob.bin").read_bytes() == b"\x00\x01"
    assert sorted(path.name for path in tmp_path.iterdir()) == [
        "blob.bin",
        "world_behavior_packs.json",
    ]


@pytest.mark.unit
def test_atomic_write_requires_existing_parent(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        atomic_write(tmp_path / "missing" / "file.json", "{}")


@pytest.mark.unit
def test_remove_within_handles_files_trees_and_missing(tmp_path: Path) -> None:
    tree = tmp_path / "tree"
    (tree / "nested").mkdir(parents=True)
    (tree / "nested" / "file.txt").write_text("x", encoding="utf-8")
    single = tmp_path / "single.txt"
    single.write_text("x", encoding="utf-8")

    assert remove_within(tree, tmp_path)
    assert remove_within(single, tmp_path)
    assert not remove_within(tmp_path / "absent", tmp_path)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.unit
@pytest.mark.skipif(os.name != "posix", reason="symlinks need POSIX semantics")
def test_remove_within_unlinks_symlink_without_touching_target(tmp_path: Path) -> None:
    source = tmp_path / "source"
    source.mkdir()
    (source / "keep.txt").write_text("x", encoding="utf-8")
    root = tmp_path / "root"
    root.mkdir()
    link = root / "link"
    link.symlink_to(source, target_is_directory=True)

    assert remove_within(link, root)

    assert not link.exists()
    assert (source / "keep.txt").is_file()


@pytest.mark.unit
def test_remove_within_refuses_outside_root(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    outside = tmp_path / "outside.txt"
    outside.write_text("x", encoding="utf-8")

    with pytest.raises(ValueError, match="refusing to delete"):
        remove_within(outside, root)
    assert outside.exists()


@pytest.mark.unit
def test_contained_path(tmp_path: Path) -> None:
    assert contained_path(tmp_path, "a/b.txt") == tmp_path / "a" / "b.txt"
    assert contained_path(tmp_path, "a\\b.txt") == tmp_path / "a" / "b.txt"
    for member in ("../x", "/etc/passwd", "C:/x", "a/../../x"):
        with pytest.raises(ValueError):
            contained_path(tmp_path, member)
