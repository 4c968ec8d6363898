"""Crawl scheduler.

MirrorCrawler owns one run's state (frontier, visited map, filename allocator) and
drives the render -> rewrite -> download -> persist cycle one page at a time in
breadth-first order, then runs the link fixup pass over everything it saved.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pagemirror.assets import AssetDownloader
from pagemirror.config import MirrorConfig
from pagemirror.exceptions import RenderError, RendererUnavailableError
from pagemirror.frontier import Frontier
from pagemirror.outputs import OutputManager
from pagemirror.renderer import Renderer
from pagemirror.rewriter import LinkRewriter
from pagemirror.rules import PageClassifier, URLNormalizer
from pagemirror.slugs import SlugAllocator

logger = logging.getLogger(__name__)


class PageState(StrEnum):
    """Lifecycle of a URL within one run. PERSISTED and SKIPPED are terminal."""

    QUEUED = "queued"
    FETCHING = "fetching"
    RENDERING = "rendering"
    REWRITING = "rewriting"
    PERSISTED = "persisted"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class VisitedEntry:
    """A persisted page. The filename never changes once allocated."""

    title: str
    filename: str


@dataclass
class CrawlStats:
    """Statistics collected during a run."""

    pages_persisted: int = 0
    pages_skipped: int = 0
    bytes_written: int = 0
    pages_fixed: int = 0
    assets_downloaded: int = 0
    assets_skipped: int = 0
    assets_failed: int = 0
    stopped_reason: str | None = None
    # reason type -> list of {"url", "error"} dicts
    skip_reasons: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

    @property
    def pages_attempted(self) -> int:
        return self.pages_persisted + self.pages_skipped


class MirrorCrawler:
    """Sequential breadth-first crawler producing a static mirror.

    Each URL is visited at most once and never retried. A page is skipped on a
    non-success status, a navigation error or any exception while processing
    it; the crawl itself only fails if the renderer cannot run at all.

    Example:
        >>> crawler = MirrorCrawler(config, renderer, downloader, output_manager)
        >>> stats = await crawler.run()
        >>> crawler.visited["https://example.com/Intro-0123..."].filename
        'intro.html'
    """

    def __init__(
        self,
        config: MirrorConfig,
        renderer: Renderer,
        asset_downloader: AssetDownloader,
        output_manager: OutputManager,
        on_page: Callable[[str, PageState], None] | None = None,
    ) -> None:
        """Initialize crawler.

        Args:
            config: Validated configuration
            renderer: Rendering engine (already started or lazily starting)
            asset_downloader: Image downloader writing into the asset directory
            output_manager: Output layout and persistence
            on_page: Optional callback invoked on every state change
        """
        self.config = config
        self.renderer = renderer
        self.asset_downloader = asset_downloader
        self.output_manager = output_manager
        self.on_page = on_page

        self.seed_url = URLNormalizer.normalize_url(config.site.seed_url)
        self.frontier = Frontier([self.seed_url])
        self.visited: dict[str, VisitedEntry] = {}
        self.states: dict[str, PageState] = {self.seed_url: PageState.QUEUED}
        self.stats = CrawlStats()

        self.allocator = SlugAllocator()
        self.classifier = PageClassifier.from_seed(
            config.site.seed_url, config.crawling.page_id_pattern
        )
        self.rewriter = LinkRewriter(self.classifier, self.allocator, config.site.title_suffixes)

    def _set_state(self, url: str, state: PageState) -> None:
        self.states[url] = state
        if self.on_page is not None:
            self.on_page(url, state)

    async def run(self) -> CrawlStats:
        """Crawl until the frontier drains or the page cap is reached.

        Returns:
            CrawlStats for the run

        Raises:
            RendererUnavailableError: If the renderer cannot be used at all
        """
        max_pages = self.config.crawling.max_pages
        logger.info(f"Starting crawl at {self.seed_url}")

        while self.frontier:
            if self.stats.pages_attempted >= max_pages:
                self.stats.stopped_reason = "max_pages"
                logger.warning(
                    f"Reached page cap ({max_pages}), "
                    f"{len(self.frontier)} queued URL(s) not visited"
                )
                break

            url = self.frontier.pop()
            if url in self.visited:
                continue

            await self._process_page(url)

        asset_stats = self.asset_downloader.stats
        self.stats.assets_downloaded = asset_stats.downloaded
        self.stats.assets_skipped = asset_stats.skipped
        self.stats.assets_failed = asset_stats.failed

        self.stats.pages_fixed = await self.output_manager.fixup_links(self.visited)
        logger.info(
            f"Crawl finished: {self.stats.pages_persisted} saved, "
            f"{self.stats.pages_skipped} skipped, {self.stats.pages_fixed} fixed up"
        )
        return self.stats

    async def _process_page(self, url: str) -> None:
        self._set_state(url, PageState.FETCHING)
        logger.info(f"Visiting {url}")

        try:
            result = await self.renderer.render(url)
        except RendererUnavailableError:
            raise
        except RenderError as e:
            self._skip(url, "navigation", str(e))
            return
        except Exception as e:
            self._skip(url, type(e).__name__, str(e))
            return

        if not result.ok:
            status = result.status if result.status is not None else "no response"
            self._skip(url, "status", f"status {status}")
            return

        filename: str | None = None
        try:
            self._set_state(url, PageState.RENDERING)
            snapshot = self.rewriter.rewrite(result.html, url, self.visited, self.frontier)
            for discovered in snapshot.enqueued:
                self.states[discovered] = PageState.QUEUED

            self._set_state(url, PageState.REWRITING)
            filename = self.allocator.allocate(snapshot.title)

            if snapshot.images:
                mapping = await self.asset_downloader.fetch_all(snapshot.images)
                self.rewriter.apply_assets(snapshot, mapping, self.output_manager.asset_href)

            if self.config.output.inject_bundle:
                self.rewriter.inject_bundle(snapshot.tree)

            markup = self.rewriter.serialize(snapshot.tree)
            written = await self.output_manager.write_page(filename, markup)
        except Exception as e:
            # Only persisted pages hold a filename
            if filename is not None:
                self.allocator.release(filename)
            self._skip(url, type(e).__name__, str(e))
            return

        self.visited[url] = VisitedEntry(title=snapshot.title, filename=filename)
        self.stats.pages_persisted += 1
        self.stats.bytes_written += written
        self._set_state(url, PageState.PERSISTED)
        logger.info(f"  Saved {self.output_manager.page_path(filename)}")

    def _skip(self, url: str, reason: str, error: str) -> None:
        self.stats.pages_skipped += 1
        self.stats.skip_reasons.setdefault(reason, []).append({"url": url, "error": error})
        self._set_state(url, PageState.SKIPPED)
        logger.warning(f"Skipped {url}: {error}")
