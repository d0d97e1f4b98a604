"""Behavior/resource pack installation into a dedicated server directory."""

from bedrockci.packs.installer import (
    InstalledPacks,
    InstallMode,
    PackHeader,
    copy_test_packs,
    create_world_pack_configs,
    install_test_packs,
    read_pack_manifest,
    symlink_test_packs,
)

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
