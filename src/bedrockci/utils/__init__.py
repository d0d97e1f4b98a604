"""Filesystem helpers shared by the pack installer and the server downloader."""

from bedrockci.utils.fs import atomic_write, contained_path, remove_within

__all__ = [
    "atomic_write",
    "contained_path",
    "remove_within",
]
