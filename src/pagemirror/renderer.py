"""Rendering engine collaborator.

The crawler only talks to a Renderer: give it a URL, get back the rendered DOM
snapshot and the HTTP-like status of the navigation. PlaywrightRenderer is the
production implementation backed by headless Chromium.
"""

import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from pagemirror.config import RenderConfig
from pagemirror.exceptions import RenderError, RendererUnavailableError

logger = logging.getLogger(__name__)

# Clicks collapsed toggle-like buttons (aria-expanded/aria-controls with an icon
# and short text). Already expanded widgets are left alone.
EXPAND_DISCLOSURES_JS = """
(maxTextLength) => {
    let clicked = 0;
    document.querySelectorAll('button, [role="button"]').forEach((btn) => {
        const hasIcon = btn.querySelector('svg') || btn.querySelector('img');
        const expanded = btn.getAttribute('aria-expanded');
        const toggleLike = expanded !== null || btn.getAttribute('aria-controls');
        const shortText = (btn.textContent || '').trim().length < maxTextLength;
        if (toggleLike && expanded !== 'true' && hasIcon && shortText) {
            try { btn.click(); clicked++; } catch (e) {}
        }
    });
    return clicked;
}
"""

EXPAND_SETTLE_MS = 300


@dataclass(frozen=True)
class RenderResult:
    """Outcome of rendering one URL.

    Attributes:
        url: Requested URL
        ok: True if navigation returned a 2xx response
        status: HTTP status of the main document (None if no response)
        html: Rendered markup (empty when not ok)
        final_url: URL after redirects
    """

    url: str
    ok: bool
    status: int | None
    html: str
    final_url: str


@runtime_checkable
class Renderer(Protocol):
    """Fetch-rendered-HTML interface used by the crawler.

    render() returns ok=False for non-success statuses and raises RenderError
    for navigation failures; the crawler treats both as a skipped page.
    start() raises RendererUnavailableError when the engine cannot run.
    """

    async def start(self) -> None: ...

    async def render(self, url: str) -> RenderResult: ...

    async def close(self) -> None: ...


class PlaywrightRenderer:
    """Headless Chromium renderer.

    One browser and one context for the whole run; each URL gets a fresh page.
    After navigation it waits (bounded) for the content marker, tries to expand
    collapsed disclosure widgets, then captures page.content().

    Example:
        >>> async with PlaywrightRenderer(config.render) as renderer:
        ...     result = await renderer.render("https://example.com/")
    """

    def __init__(self, config: RenderConfig) -> None:
        self.config = config
        self.playwright: Any | None = None
        self.browser: Any | None = None
        self.context: Any | None = None

    async def __aenter__(self) -> "PlaywrightRenderer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def start(self) -> None:
        """Launch Chromium and create the browser context.

        Raises:
            RendererUnavailableError: If playwright or the browser is missing
        """
        if self.browser is not None:
            return

        try:
            from playwright.async_api import async_playwright
        except ImportError as e:
            raise RendererUnavailableError(
                "Playwright is required for rendering. "
                "Install with: pip install playwright && playwright install chromium"
            ) from e

        logger.info("Starting headless Chromium...")
        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(headless=self.config.headless)
            self.context = await self.browser.new_context(**self._context_options())
        except Exception as e:
            await self.close()
            raise RendererUnavailableError(
                f"Could not start Chromium: {e}. Try: playwright install chromium"
            ) from e

    def _context_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "viewport": {
                "width": self.config.viewport_width,
                "height": self.config.viewport_height,
            },
        }
        if self.config.user_agent_override:
            options["user_agent"] = self.config.user_agent_override
        return options

    async def render(self, url: str) -> RenderResult:
        """Navigate to url and capture the rendered DOM.

        Raises:
            RenderError: If navigation fails or times out
        """
        await self.start()
        assert self.context is not None

        page = await self.context.new_page()
        try:
            try:
                response = await page.goto(
                    url,
                    wait_until=self.config.wait_for,
                    timeout=self.config.navigation_timeout_ms,
                )
            except Exception as e:
                raise RenderError(f"Navigation failed for {url}: {type(e).__name__}: {e}") from e

            if response is None or not response.ok:
                status = response.status if response is not None else None
                return RenderResult(url=url, ok=False, status=status, html="", final_url=page.url)

            await self._wait_for_content(page, url)
            if self.config.expand_disclosures:
                await self._expand_disclosures(page, url)

            html = await page.content()
            return RenderResult(
                url=url, ok=True, status=response.status, html=html, final_url=page.url
            )
        finally:
            with contextlib.suppress(Exception):
                await page.close()

    async def _wait_for_content(self, page: Any, url: str) -> None:
        """Wait for the content marker; expiry is tolerated."""
        if not self.config.content_selector or self.config.content_timeout_ms == 0:
            return
        try:
            await page.wait_for_selector(
                self.config.content_selector,
                state="attached",
                timeout=self.config.content_timeout_ms,
            )
        except Exception as e:
            logger.debug(f"Content marker not found on {url}: {type(e).__name__}")

    async def _expand_disclosures(self, page: Any, url: str) -> None:
        """Best-effort click on collapsed toggles so their content is captured."""
        try:
            clicked = await page.evaluate(
                EXPAND_DISCLOSURES_JS, self.config.max_toggle_text_length
            )
            if clicked:
                logger.debug(f"Expanded {clicked} disclosure widget(s) on {url}")
                await page.wait_for_timeout(EXPAND_SETTLE_MS)
        except Exception as e:
            logger.debug(f"Disclosure expansion failed on {url}: {type(e).__name__}")

    async def close(self) -> None:
        """Close context, browser and the Playwright driver."""
        if self.context is not None:
            with contextlib.suppress(Exception):
                await self.context.close()
        if self.browser is not None:
            with contextlib.suppress(Exception):
                await self.browser.close()
            logger.info("Chromium closed")
        if self.playwright is not None:
            with contextlib.suppress(Exception):
                await self.playwright.stop()

        self.context = None
        self.browser = None
        self.playwright = None
