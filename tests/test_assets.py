"""Tests for asset filename derivation and AssetDownloader."""

import logging
from pathlib import Path

import httpx
import pytest
from pytest_httpx import HTTPXMock

from pagemirror.assets import AssetDownloader, asset_filename
from pagemirror.config import AssetConfig
from pagemirror.outputs import OutputManager
from tests.conftest import create_config

IMAGE_URL = "https://cdn.example.com/images/logo.png"


class TestAssetFilename:
    """Deterministic, content-addressed asset names."""

    def test_deterministic(self) -> None:
        assert asset_filename(IMAGE_URL) == asset_filename(IMAGE_URL)

    def test_distinct_urls_distinct_names(self) -> None:
        # Same host and nearly identical paths must not collide
        a = asset_filename("https://cdn.example.com/images/a.png")
        b = asset_filename("https://cdn.example.com/images/b.png")
        assert a != b

    @pytest.mark.parametrize(
        "url,extension",
        [
            ("https://h/x.png", ".png"),
            ("https://h/x.PNG", ".png"),
            ("https://h/x.jpg", ".jpg"),
            ("https://h/x.jpeg?v=2", ".jpeg"),
            ("https://h/x.gif", ".gif"),
            ("https://h/x.svg", ".svg"),
            ("https://h/x.webp", ".webp"),
            ("https://h/image?id=7", ".bin"),
            ("https://h/x.js", ".bin"),
            ("https://h/dir.png/file", ".bin"),
        ],
    )
    def test_extension(self, url: str, extension: str) -> None:
        name = asset_filename(url)
        assert name.endswith(extension)
        assert len(name) == 24 + len(extension)


async def test_download_writes_file(tmp_path: Path, httpx_mock: HTTPXMock) -> None:
    config = create_config(tmp_path)
    output = OutputManager(config)
    httpx_mock.add_response(url=IMAGE_URL, content=b"png-bytes")

    async with AssetDownloader(config, output) as downloader:
        filename = await downloader.fetch(IMAGE_URL)

    assert filename == asset_filename(IMAGE_URL)
    assert output.asset_path(filename).read_bytes() == b"png-bytes"
    assert downloader.stats.downloaded == 1
    assert downloader.stats.total_bytes == len(b"png-bytes")
    # No temporary file left behind
    assert [p.name for p in output.assets_dir.iterdir()] == [filename]


async def test_fetch_twice_downloads_once(tmp_path: Path, httpx_mock: HTTPXMock) -> None:
    config = create_config(tmp_path)
    output = OutputManager(config)
    httpx_mock.add_response(url=IMAGE_URL, content=b"png-bytes")

    async with AssetDownloader(config, output) as downloader:
        first = await downloader.fetch(IMAGE_URL)
        second = await downloader.fetch(IMAGE_URL)

    assert first == second
    assert len(httpx_mock.get_requests()) == 1


async def test_existing_file_not_refetched_across_runs(
    tmp_path: Path, httpx_mock: HTTPXMock
) -> None:
    config = create_config(tmp_path)
    output = OutputManager(config)
    httpx_mock.add_response(url=IMAGE_URL, content=b"png-bytes")

    async with AssetDownloader(config, output) as downloader:
        first = await downloader.fetch(IMAGE_URL)

    async with AssetDownloader(config, output) as downloader:
        second = await downloader.fetch(IMAGE_URL)
        assert downloader.stats.skipped == 1
        assert downloader.stats.downloaded == 0

    assert first == second
    assert len(httpx_mock.get_requests()) == 1


async def test_existing_file_is_not_overwritten(tmp_path: Path) -> None:
    config = create_config(tmp_path)
    output = OutputManager(config)
    existing = output.asset_path(asset_filename(IMAGE_URL))
    existing.write_bytes(b"original")

    async with AssetDownloader(config, output) as downloader:
        filename = await downloader.fetch(IMAGE_URL)

    assert filename == existing.name
    assert existing.read_bytes() == b"original"


async def test_fetch_all_dedups_concurrent_requests(
    tmp_path: Path, httpx_mock: HTTPXMock
) -> None:
    config = create_config(tmp_path)
    output = OutputManager(config)
    other = "https://cdn.example.com/images/photo.jpg"
    httpx_mock.add_response(url=IMAGE_URL, content=b"png-bytes")
    httpx_mock.add_response(url=other, content=b"jpg-bytes")

    async with AssetDownloader(config, output) as downloader:
        mapping = await downloader.fetch_all([IMAGE_URL, other, IMAGE_URL])

    assert mapping == {IMAGE_URL: asset_filename(IMAGE_URL), other: asset_filename(other)}
    assert len(httpx_mock.get_requests()) == 2
    assert len(list(output.assets_dir.iterdir())) == 2


async def test_http_error_is_logged_not_raised(
    tmp_path: Path, httpx_mock: HTTPXMock, caplog: pytest.LogCaptureFixture
) -> None:
    config = create_config(tmp_path)
    output = OutputManager(config)
    httpx_mock.add_response(url=IMAGE_URL, status_code=404)

    with caplog.at_level(logging.WARNING, logger="pagemirror.assets"):
        async with AssetDownloader(config, output) as downloader:
            mapping = await downloader.fetch_all([IMAGE_URL])

    assert mapping == {}
    assert downloader.stats.failed == 1
    assert "HTTPStatusError" in downloader.stats.errors
    assert any(IMAGE_URL in r.getMessage() for r in caplog.records)
    assert not any(output.assets_dir.iterdir())


async def test_network_error_is_logged_not_raised(
    tmp_path: Path, httpx_mock: HTTPXMock
) -> None:
    config = create_config(tmp_path)
    output = OutputManager(config)
    httpx_mock.add_exception(httpx.ConnectError("connection refused"), url=IMAGE_URL)

    async with AssetDownloader(config, output) as downloader:
        filename = await downloader.fetch(IMAGE_URL)

    assert filename is None
    assert "ConnectError" in downloader.stats.errors


async def test_oversized_asset_rejected(tmp_path: Path, httpx_mock: HTTPXMock) -> None:
    config = create_config(
        tmp_path, assets=AssetConfig(max_retries=0, max_asset_size_mb=0.1)
    )
    output = OutputManager(config)
    httpx_mock.add_response(url=IMAGE_URL, content=b"x" * (200 * 1024))

    async with AssetDownloader(config, output) as downloader:
        filename = await downloader.fetch(IMAGE_URL)

    assert filename is None
    assert "FileTooLarge" in downloader.stats.errors
    assert not output.asset_path(asset_filename(IMAGE_URL)).exists()


async def test_failed_asset_retried_on_next_fetch(
    tmp_path: Path, httpx_mock: HTTPXMock
) -> None:
    config = create_config(tmp_path)
    output = OutputManager(config)
    httpx_mock.add_response(url=IMAGE_URL, status_code=404)
    httpx_mock.add_response(url=IMAGE_URL, content=b"png-bytes")

    async with AssetDownloader(config, output) as downloader:
        assert await downloader.fetch(IMAGE_URL) is None
        assert await downloader.fetch(IMAGE_URL) == asset_filename(IMAGE_URL)


async def test_download_disabled(tmp_path: Path) -> None:
    config = create_config(tmp_path, assets=AssetConfig(download=False))
    output = OutputManager(config)

    async with AssetDownloader(config, output) as downloader:
        assert await downloader.fetch_all([IMAGE_URL]) == {}
