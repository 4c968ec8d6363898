"""Asset downloading with content-addressed filenames.

Every asset URL maps to a deterministic filename in the asset directory. Files
that already exist are never fetched again or overwritten, and concurrent
requests for the same URL share one download.
"""

import asyncio
import errno
import hashlib
import logging
import posixpath
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import aiofiles
import httpx

from pagemirror.http_client import create_http_client
from pagemirror.rules import URLNormalizer

if TYPE_CHECKING:
    from pagemirror.config import MirrorConfig
    from pagemirror.outputs import OutputManager

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp"})
GENERIC_EXTENSION = ".bin"
DIGEST_LENGTH = 24


def asset_filename(url: str) -> str:
    """Derive the local filename for an absolute asset URL.

    The stem is a truncated SHA-256 of the URL string; the extension is kept
    when the URL path ends in a known image type, otherwise `.bin`.

    Examples:
        >>> asset_filename("https://example.com/img/logo.PNG?v=2")[-4:]
        '.png'
        >>> asset_filename("https://example.com/image?id=7")[-4:]
        '.bin'
    """
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]
    try:
        path = urlparse(url).path
    except ValueError:
        path = ""
    ext = posixpath.splitext(path)[1].lower()
    if ext not in IMAGE_EXTENSIONS:
        ext = GENERIC_EXTENSION
    return f"{digest}{ext}"


class AssetTooLargeError(Exception):
    """Raised when an asset exceeds the configured size limit."""


@dataclass
class AssetStats:
    """Statistics for asset downloads."""

    downloaded: int = 0
    failed: int = 0
    skipped: int = 0  # Already on disk
    total_bytes: int = 0
    # error_type -> list of error dicts
    errors: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

    def record_error(self, error_type: str, url: str, error: str, **extra: Any) -> None:
        self.failed += 1
        self.errors.setdefault(error_type, []).append({"url": url, "error": error, **extra})


class AssetDownloader:
    """Downloads assets concurrently into the asset directory.

    Features:
    - Concurrent downloads bounded by a semaphore
    - Deterministic filenames (see asset_filename)
    - Skip existing files, never overwrite
    - One in-flight download per filename
    - Failures logged and recorded, never raised

    Example:
        >>> async with AssetDownloader(config, output_manager) as downloader:
        ...     mapping = await downloader.fetch_all(["https://example.com/a.png"])
    """

    def __init__(
        self,
        config: "MirrorConfig",
        output_manager: "OutputManager",
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize asset downloader.

        Args:
            config: Mirror configuration (asset settings)
            output_manager: OutputManager for asset path resolution
            client: Optional HTTP client (for testing with mocks)
        """
        self.config = config
        self.output_manager = output_manager
        self.client = client
        self._owns_client = client is None
        self.downloaded: dict[str, str] = {}  # url -> filename present on disk
        self.stats = AssetStats()
        self._inflight: dict[str, asyncio.Task[str | None]] = {}

        self.semaphore = asyncio.Semaphore(config.assets.max_concurrent_downloads)

    async def __aenter__(self) -> "AssetDownloader":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this downloader created it."""
        if self._owns_client and self.client is not None:
            await self.client.aclose()
            self.client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = create_http_client(self.config)
        return self.client

    async def fetch_all(self, urls: list[str]) -> dict[str, str]:
        """Fetch every distinct URL concurrently.

        Args:
            urls: Absolute asset URLs (duplicates allowed)

        Returns:
            Mapping of each successfully materialized URL to its filename.
            Failed URLs are absent.
        """
        if not self.config.assets.download:
            return {}

        unique = list(dict.fromkeys(urls))
        results = await asyncio.gather(*(self.fetch(url) for url in unique))
        return {url: name for url, name in zip(unique, results, strict=True) if name}

    async def fetch(self, url: str) -> str | None:
        """Make sure the asset for url is on disk.

        Returns:
            The asset filename, or None if it could not be downloaded
        """
        url = URLNormalizer.normalize_url(url)
        filename = asset_filename(url)

        if url in self.downloaded:
            return filename

        task = self._inflight.get(filename)
        if task is None:
            task = asyncio.create_task(self._download(url, filename))
            self._inflight[filename] = task
            task.add_done_callback(lambda _: self._inflight.pop(filename, None))

        return await task

    async def _download(self, url: str, filename: str) -> str | None:
        async with self.semaphore:
            file_path = self.output_manager.asset_path(filename)

            if file_path.exists():
                self.stats.skipped += 1
                self.downloaded[url] = filename
                return filename

            try:
                client = await self._ensure_client()
                response = await client.get(url)
                response.raise_for_status()

                content = response.content
                self._check_size(len(content), response.headers.get("content-length"))

                # Write through a temporary name so a partial file is never taken as cached
                part_path = file_path.with_name(f"{filename}.part")
                async with aiofiles.open(part_path, "wb") as f:
                    await f.write(content)
                part_path.replace(file_path)

            except httpx.HTTPError as e:
                self.stats.record_error(type(e).__name__, url, str(e))
                logger.warning(f"Image failed {url}: {type(e).__name__}: {e}")
                return None

            except AssetTooLargeError as e:
                self.stats.record_error("FileTooLarge", url, str(e))
                logger.warning(f"Image skipped {url}: {e}")
                return None

            except OSError as e:
                if e.errno == errno.ENOSPC:
                    error_type = "disk_full"
                elif e.errno == errno.EACCES:
                    error_type = "permission_denied"
                else:
                    error_type = "disk_io"
                self.stats.record_error(error_type, url, str(e), errno=e.errno)
                logger.warning(f"Image not saved {url}: {e}")
                return None

            except Exception as e:
                self.stats.record_error(type(e).__name__, url, str(e))
                logger.warning(f"Image failed {url}: {type(e).__name__}: {e}")
                return None

            self.downloaded[url] = filename
            self.stats.downloaded += 1
            self.stats.total_bytes += len(content)
            logger.info(f"  Downloaded {filename}")
            return filename

    def _check_size(self, actual: int, declared: str | None) -> None:
        max_mb = self.config.assets.max_asset_size_mb
        if not max_mb:
            return

        size = actual
        if declared:
            try:
                size = max(size, int(declared))
            except ValueError:
                pass

        size_mb = size / (1024 * 1024)
        if size_mb > max_mb:
            raise AssetTooLargeError(f"Asset size {size_mb:.1f}MB exceeds limit of {max_mb}MB")
