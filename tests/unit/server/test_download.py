"""
bedrockci — unit tests for server download and extraction

File: tests/unit/server/test_download.py

Purpose
- Validate version discovery and zip installation offline, over ``httpx.MockTransport``.

What this test file should cover
- EULA gate and already-installed guard run before any request.
- Version discovery from the download page and its failure modes.
- Streaming download with progress, extraction with mode bits, and path-escape rejection.
"""

from __future__ import annotations

import io
import os
import stat
import zipfile
from pathlib import Path

import httpx
import pytest

from bedrockci.server.download import (
    DownloadFailed,
    DownloadSettings,
    EulaNotAccepted,
    ExtractionFailed,
    ServerAlreadyInstalled,
    download_server,
    extract_server_zip,
    get_latest_version,
)

SETTINGS = DownloadSettings(
    page_url="https://downloads.test/bedrock/",
    url_template="https://downloads.test/bin-linux/bedrock-server-{version}.zip",
)


def _zip_bytes(members: dict[str, bytes], *, modes: dict[str, int] | None = None) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in members.items():
            info = zipfile.ZipInfo(name)
            mode = (modes or {}).get(name)
            if mode is not None:
                info.external_attr = (stat.S_IFREG | mode) << 16
            archive.writestr(info, data)
    return buffer.getvalue()


def _client(handler: httpx.MockTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=handler)


@pytest.mark.unit
def test_settings_build_url_and_pattern() -> None:
    assert SETTINGS.download_url("1.21.3.01") == (
        "https://downloads.test/bin-linux/bedrock-server-1.21.3.01.zip"
    )
    match = SETTINGS.version_pattern().search(
        '<a href="https://downloads.test/bin-linux/bedrock-server-1.21.3.01.zip">'
    )
    assert match is not None
    assert match.group(1) == "1.21.3.01"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_latest_version_scans_page() -> None:
    page = (
        '<a href="https://downloads.test/bin-win/bedrock-server-9.9.9.zip">win</a>'
        '<a href="https://downloads.test/bin-linux/bedrock-server-1.21.44.01.zip">linux</a>'
    )

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == SETTINGS.page_url
        return httpx.Response(200, text=page)

    async with _client(httpx.MockTransport(handler)) as client:
        version = await get_latest_version(settings=SETTINGS, client=client)

    assert version == "1.21.44.01"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_latest_version_without_link() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html></html>"))
    async with _client(transport) as client:
        with pytest.raises(DownloadFailed, match="Could not find version in download page"):
            await get_latest_version(settings=SETTINGS, client=client)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_latest_version_http_error() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    async with _client(transport) as client:
        with pytest.raises(DownloadFailed, match="HTTP 503"):
            await get_latest_version(settings=SETTINGS, client=client)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_latest_version_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    async with _client(httpx.MockTransport(handler)) as client:
        with pytest.raises(DownloadFailed, match="offline"):
            await get_latest_version(settings=SETTINGS, client=client)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_eula_must_be_accepted(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with _client(httpx.MockTransport(handler)) as client:
        with pytest.raises(EulaNotAccepted, match="EULA and Privacy Policy not accepted"):
            await download_server(
                "1.21.0", tmp_path, accepted_eula=False, settings=SETTINGS, client=client
            )

    assert list(tmp_path.iterdir()) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_already_installed_is_rejected_without_force(tmp_path: Path) -> None:
    (tmp_path / "1.21.0").mkdir()

    with pytest.raises(ServerAlreadyInstalled, match="Server version 1.21.0 already installed"):
        await download_server("1.21.0", tmp_path, accepted_eula=True, settings=SETTINGS)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_download_extracts_archive_and_reports_progress(tmp_path: Path) -> None:
    archive = _zip_bytes(
        {
            "bedrock_server": b"#!/bin/sh\n",
            "behavior_packs/vanilla/manifest.json": b"{}",
            "server.properties": b"level-name=Bedrock level\n",
        },
        modes={"bedrock_server": 0o755},
    )
    requested: list[str] = []
    progress: list[tuple[int, int | None]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(200, content=archive)

    async with _client(httpx.MockTransport(handler)) as client:
        version_dir = await download_server(
            "1.21.0",
            tmp_path,
            accepted_eula=True,
            settings=SETTINGS,
            client=client,
            on_progress=lambda received, total: progress.append((received, total)),
        )

    assert version_dir == tmp_path / "1.21.0"
    assert requested == ["https://downloads.test/bin-linux/bedrock-server-1.21.0.zip"]
    assert (version_dir / "behavior_packs" / "vanilla" / "manifest.json").read_bytes() == b"{}"
    if os.name == "posix":
        assert (version_dir / "bedrock_server").stat().st_mode & 0o777 == 0o755
    assert progress
    assert progress[-1] == (len(archive), len(archive))
    assert sorted(path.name for path in tmp_path.iterdir()) == ["1.21.0"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_force_reinstall_overwrites(tmp_path: Path) -> None:
    (tmp_path / "1.21.0").mkdir()
    archive = _zip_bytes({"bedrock_server": b"new"})
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=archive))

    async with _client(transport) as client:
        await download_server(
            "1.21.0", tmp_path, accepted_eula=True, force=True, settings=SETTINGS, client=client
        )

    assert (tmp_path / "1.21.0" / "bedrock_server").read_bytes() == b"new"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_download_http_error(tmp_path: Path) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    async with _client(transport) as client:
        with pytest.raises(DownloadFailed, match="HTTP 404"):
            await download_server(
                "1.21.0", tmp_path, accepted_eula=True, settings=SETTINGS, client=client
            )

    assert not (tmp_path / "1.21.0").exists()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_corrupt_archive_leaves_no_version_dir(tmp_path: Path) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"not a zip"))
    async with _client(transport) as client:
        with pytest.raises(ExtractionFailed, match="Failed to open zip archive"):
            await download_server(
                "1.21.0", tmp_path, accepted_eula=True, settings=SETTINGS, client=client
            )

    assert not (tmp_path / "1.21.0").exists()


@pytest.mark.unit
@pytest.mark.parametrize("member", ["../escape.txt", "/abs/path.txt", "nested/../../escape.txt"])
def test_extraction_rejects_escaping_members(tmp_path: Path, member: str) -> None:
    archive_path = tmp_path / "evil.zip"
    archive_path.write_bytes(_zip_bytes({member: b"x"}))

    with pytest.raises(ExtractionFailed):
        extract_server_zip(archive_path, tmp_path / "target")

    assert not (tmp_path / "escape.txt").exists()


@pytest.mark.unit
def test_extraction_counts_files(tmp_path: Path) -> None:
    archive_path = tmp_path / "ok.zip"
    archive_path.write_bytes(_zip_bytes({"a.txt": b"a", "dir/b.txt": b"b", "dir/": b""}))

    assert extract_server_zip(archive_path, tmp_path / "target") == 2
    assert (tmp_path / "target" / "dir" / "b.txt").read_bytes() == b"b"
