"""HTTP client factory for asset downloads.

Builds an httpx AsyncClient with HTTP/2, bounded timeouts, redirect limits and a
retry transport for transient failures (429/5xx, connection errors).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from httpx_retries import Retry, RetryTransport

from pagemirror import __version__

if TYPE_CHECKING:
    from pagemirror.config import MirrorConfig

USER_AGENT = f"pagemirror/{__version__}"


def create_http_client(
    config: MirrorConfig,
    *,
    max_connections: int | None = None,
) -> httpx.AsyncClient:
    """Create the httpx client used by AssetDownloader.

    Args:
        config: Mirror configuration (asset timeouts, retries, redirects)
        max_connections: Connection pool size (default: asset concurrency)

    Returns:
        Configured httpx AsyncClient
    """
    assets = config.assets

    retry_policy = Retry(
        total=assets.max_retries,
        backoff_factor=0.5,
        backoff_jitter=0.3,
        status_forcelist=[429, 500, 502, 503, 504],
        respect_retry_after_header=True,
        allowed_methods=["HEAD", "GET"],
    )

    pool_size = max_connections or assets.max_concurrent_downloads
    base_transport = httpx.AsyncHTTPTransport(
        http2=True,
        limits=httpx.Limits(
            max_connections=pool_size,
            max_keepalive_connections=pool_size,
        ),
        retries=0,
    )

    return httpx.AsyncClient(
        transport=RetryTransport(transport=base_transport, retry=retry_policy),
        timeout=httpx.Timeout(assets.timeout_seconds, connect=min(10.0, assets.timeout_seconds)),
        follow_redirects=True,
        max_redirects=assets.max_redirects,
        headers={"User-Agent": USER_AGENT},
    )
