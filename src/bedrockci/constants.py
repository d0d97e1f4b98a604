"""Stable constants shared across the validation engine and its collaborators."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Protocol markers emitted by the dedicated server (case-sensitive substrings).
SERVER_STARTED_MARKER: Final[str] = "Server started."
TELEMETRY_BEGIN_MARKER: Final[str] = "TELEMETRY MESSAGE"
TELEMETRY_SEPARATOR_MIN_RUN: Final[int] = 10
ERROR_MARKER: Final[str] = "ERROR"
WARN_MARKER: Final[str] = "WARN"
INFO_MARKER: Final[str] = "INFO"

# Category bucket used for findings without a ``[x] [Category]`` prefix.
OTHER_CATEGORY: Final[str] = "Other"

# Server layout.
SERVER_EXECUTABLE_NAME: Final[str] = "bedrock_server"
SERVER_ROOT_ENV: Final[str] = "BEDROCK_SERVER_PATH"
DEFAULT_SERVER_ROOT: Final[str] = "~/.bedrockci/server"
LATEST_VERSION: Final[str] = "latest"

# Pack installation layout inside a server directory.
TESTING_BP_NAME: Final[str] = "TESTING_PACK_BP"
TESTING_RP_NAME: Final[str] = "TESTING_PACK_RP"
BEHAVIOR_PACKS_DIR: Final[PurePosixPath] = PurePosixPath("behavior_packs")
RESOURCE_PACKS_DIR: Final[PurePosixPath] = PurePosixPath("resource_packs")
WORLD_DIR: Final[PurePosixPath] = PurePosixPath("worlds/Bedrock level")
WORLD_BEHAVIOR_PACKS_FILE: Final[str] = "world_behavior_packs.json"
WORLD_RESOURCE_PACKS_FILE: Final[str] = "world_resource_packs.json"
PACK_MANIFEST_FILE: Final[str] = "manifest.json"

# Timing.
DEFAULT_IDLE_TIMEOUT_SECONDS: Final[float] = 5.0
DEFAULT_DOWNLOAD_TIMEOUT_SECONDS: Final[float] = 60.0

# Download endpoints.
DOWNLOAD_PAGE_URL: Final[str] = "https://minecraft.net/en-us/download/server/bedrock/"
DOWNLOAD_URL_TEMPLATE: Final[str] = (
    "https://www.minecraft.net/bedrockdedicatedserver/bin-linux/bedrock-server-{version}.zip"
)

CONFIG_SCHEMA_VERSION: Final[int] = 1

__all__ = [
    "BEHAVIOR_PACKS_DIR",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_DOWNLOAD_TIMEOUT_SECONDS",
    "DEFAULT_IDLE_TIMEOUT_SECONDS",
    "DEFAULT_SERVER_ROOT",
    "DOWNLOAD_PAGE_URL",
    "DOWNLOAD_URL_TEMPLATE",
    "ERROR_MARKER",
    "INFO_MARKER",
    "LATEST_VERSION",
    "OTHER_CATEGORY",
    "PACK_MANIFEST_FILE",
    "RESOURCE_PACKS_DIR",
    "SERVER_EXECUTABLE_NAME",
    "SERVER_ROOT_ENV",
    "SERVER_STARTED_MARKER",
    "TELEMETRY_BEGIN_MARKER",
    "TELEMETRY_SEPARATOR_MIN_RUN",
    "TESTING_BP_NAME",
    "TESTING_RP_NAME",
    "WARN_MARKER",
    "WORLD_BEHAVIOR_PACKS_FILE",
    "WORLD_DIR",
    "WORLD_RESOURCE_PACKS_FILE",
]
