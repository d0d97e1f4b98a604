"""Dedicated server installation: root resolution, version listing and download."""

from bedrockci.server.download import (
    EULA_NOTICE,
    DownloadFailed,
    DownloadSettings,
    EulaNotAccepted,
    ExtractionFailed,
    InvalidDownloadPath,
    ServerAlreadyInstalled,
    ServerDownloadError,
    download_server,
    extract_server_zip,
    get_latest_version,
)
from bedrockci.server.paths import (
    ServerNotInstalled,
    get_server_root,
    list_servers,
    resolve_server_dir,
    version_key,
)

__all__ = [
    "EULA_NOTICE",
    "DownloadFailed",
    "DownloadSettings",
    "EulaNotAccepted",
    "ExtractionFailed",
    "InvalidDownloadPath",
    "ServerAlreadyInstalled",
    "ServerDownloadError",
    "ServerNotInstalled",
    "download_server",
    "extract_server_zip",
    "get_latest_version",
    "get_server_root",
    "list_servers",
    "resolve_server_dir",
    "version_key",
]
