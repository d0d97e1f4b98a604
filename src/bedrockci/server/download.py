"""
bedrockci — dedicated server download

File: src/bedrockci/server/download.py

Purpose
- Discover the latest published server version from the download page.
- Stream a server zip for one version and extract it into ``<root>/<version>``.

Functional requirements
- Nothing is fetched unless the EULA and privacy policy were accepted.
- An installed version is never overwritten unless ``force`` is set.
- Archive members that would land outside the version directory are rejected.

Non-functional requirements
- HTTP goes through one ``httpx.AsyncClient``; callers may inject their own
  (tests pass one built on ``httpx.MockTransport``).
"""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
import zipfile
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Final

import httpx

from bedrockci.constants import (
    DEFAULT_DOWNLOAD_TIMEOUT_SECONDS,
    DOWNLOAD_PAGE_URL,
    DOWNLOAD_URL_TEMPLATE,
)
from bedrockci.utils.fs import contained_path
from bedrockci.validation.errors import BedrockCIError

logger = logging.getLogger(__name__)

EULA_NOTICE: Final[str] = """\
By proceeding, you agree to the Minecraft End User License Agreement:
https://minecraft.net/eula
and the Privacy Policy:
https://go.microsoft.com/fwlink/?LinkId=521839

If you do not agree, you must not use this software."""

_USER_AGENT: Final[str] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.33 "
    "(KHTML, like Gecko) Chrome/90.0.0.0 Safari/537.33"
)
_CHUNK_BYTES: Final[int] = 1 << 16

ProgressCallback = Callable[[int, int | None], None]


class ServerDownloadError(BedrockCIError):
    """Base class for download and installation failures."""


class EulaNotAccepted(ServerDownloadError):
    def __init__(self) -> None:
        super().__init__("EULA and Privacy Policy not accepted")


class ServerAlreadyInstalled(ServerDownloadError):
    def __init__(self, version: str) -> None:
        super().__init__(f"Server version {version} already installed")
        self.version = version


class DownloadFailed(ServerDownloadError):
    pass


class ExtractionFailed(ServerDownloadError):
    pass


class InvalidDownloadPath(ServerDownloadError):
    pass


@dataclass(frozen=True, slots=True)
class DownloadSettings:
    page_url: str = DOWNLOAD_PAGE_URL
    url_template: str = DOWNLOAD_URL_TEMPLATE
    timeout_seconds: float = DEFAULT_DOWNLOAD_TIMEOUT_SECONDS

    def download_url(self, version: str) -> str:
        return self.url_template.format(version=version)

    def version_pattern(self) -> re.Pattern[str]:
        """Regex matching a download link, capturing the version."""

        prefix, _, suffix = self.url_template.partition("{version}")
        return re.compile(re.escape(prefix) + r"([\d.]+?)" + re.escape(suffix))


@asynccontextmanager
async def _client_scope(
    client: httpx.AsyncClient | None, settings: DownloadSettings
) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(settings.timeout_seconds, connect=10.0),
        headers={"User-Agent": _USER_AGENT},
        follow_redirects=True,
    ) as owned:
        yield owned


async def get_latest_version(
    *, settings: DownloadSettings | None = None, client: httpx.AsyncClient | None = None
) -> str:
    """Scan the download page for the Linux server zip link and return its version."""

    config = settings or DownloadSettings()
    async with _client_scope(client, config) as http:
        try:
            response = await http.get(
                config.page_url,
                headers={"Accept-Encoding": "identity", "Accept-Language": "en"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DownloadFailed(
                f"Failed to fetch download page: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DownloadFailed(f"Failed to fetch download page: {exc}") from exc

    match = config.version_pattern().search(response.text)
    if match is None:
        raise DownloadFailed("Could not find version in download page")
    version = match.group(1)
    logger.info("latest server version discovered", extra={"version": version})
    return version


async def download_server(
    version: str,
    root: str | Path,
    *,
    accepted_eula: bool,
    force: bool = False,
    settings: DownloadSettings | None = None,
    client: httpx.AsyncClient | None = None,
    on_progress: ProgressCallback | None = None,
) -> Path:
    """Download and extract ``version`` into ``<root>/<version>``; returns that directory."""

    if not accepted_eula:
        raise EulaNotAccepted()

    config = settings or DownloadSettings()
    base = Path(root).expanduser()
    version_dir = base / version
    if version_dir.exists() and not force:
        raise ServerAlreadyInstalled(version)

    try:
        base.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise InvalidDownloadPath(f"Failed to create directory: {exc}") from exc
    if not base.is_dir():
        raise InvalidDownloadPath(f"Path must be a directory: {base}")

    url = config.download_url(version)
    logger.info("downloading server", extra={"version": version, "url": url})

    existed = version_dir.exists()
    with tempfile.TemporaryDirectory(prefix=".bedrockci-download-", dir=base) as scratch:
        archive_path = Path(scratch) / f"bedrock-server-{version}.zip"
        await _stream_to_file(url, archive_path, config, client, on_progress)
        try:
            count = extract_server_zip(archive_path, version_dir)
        except ExtractionFailed:
            # A half-extracted version would otherwise read as installed.
            if not existed:
                shutil.rmtree(version_dir, ignore_errors=True)
            raise

    logger.info(
        "server installed", extra={"version": version, "path": str(version_dir), "files": count}
    )
    return version_dir


def extract_server_zip(archive_path: str | Path, target_dir: str | Path) -> int:
    """Extract every member of ``archive_path`` below ``target_dir``; returns the file count."""

    target = Path(target_dir)
    try:
        archive = zipfile.ZipFile(archive_path)
    except (OSError, zipfile.BadZipFile) as exc:
        raise ExtractionFailed(f"Failed to open zip archive: {exc}") from exc

    extracted = 0
    with archive:
        try:
            target.mkdir(parents=True, exist_ok=True)
            for member in archive.infolist():
                try:
                    destination = contained_path(target, member.filename)
                except ValueError as exc:
                    raise ExtractionFailed(str(exc)) from exc
                if member.is_dir():
                    destination.mkdir(parents=True, exist_ok=True)
                    continue
                destination.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member) as source, destination.open("wb") as sink:
                    shutil.copyfileobj(source, sink)
                _restore_mode(member, destination)
                extracted += 1
        except (OSError, zipfile.BadZipFile) as exc:
            raise ExtractionFailed(f"Failed to extract server files: {exc}") from exc
    return extracted


async def _stream_to_file(
    url: str,
    destination: Path,
    settings: DownloadSettings,
    client: httpx.AsyncClient | None,
    on_progress: ProgressCallback | None,
) -> None:
    async with _client_scope(client, settings) as http:
        try:
            async with http.stream("GET", url) as response:
                response.raise_for_status()
                header = response.headers.get("Content-Length")
                total = int(header) if header and header.isdigit() else None
                received = 0
                with destination.open("wb") as sink:
                    async for chunk in response.aiter_bytes(_CHUNK_BYTES):
                        sink.write(chunk)
                        received += len(chunk)
                        if on_progress is not None:
                            on_progress(received, total)
        except httpx.HTTPStatusError as exc:
            raise DownloadFailed(
                f"Failed to download server: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DownloadFailed(f"Failed to download server: {exc}") from exc
        except OSError as exc:
            raise DownloadFailed(f"Failed to write server zip: {exc}") from exc


def _restore_mode(member: zipfile.ZipInfo, destination: Path) -> None:
    mode = (member.external_attr >> 16) & 0o777
    if mode:
        destination.chmod(mode)


__all__ = [
    "EULA_NOTICE",
    "DownloadFailed",
    "DownloadSettings",
    "EulaNotAccepted",
    "ExtractionFailed",
    "InvalidDownloadPath",
    "ProgressCallback",
    "ServerAlreadyInstalled",
    "ServerDownloadError",
    "download_server",
    "extract_server_zip",
    "get_latest_version",
]
