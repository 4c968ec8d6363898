"""Pytest fixtures for pagemirror tests."""

from pathlib import Path
from typing import Any

import pytest

from pagemirror.config import (
    AssetConfig,
    CrawlingRules,
    MirrorConfig,
    OutputConfig,
    RenderConfig,
    SiteConfig,
)
from pagemirror.renderer import RenderResult

HOST = "docs.example.com"
SEED_URL = f"https://{HOST}/Home-0123456789abcdef0123456789abcdef"


def page_url(name: str, page_id: str) -> str:
    """Build an in-scope page URL from a title segment and a 32-char hex id."""
    return f"https://{HOST}/{name}-{page_id}"


def make_html(title: str, body: str = "") -> str:
    """Minimal rendered document with a title and body markup."""
    return (
        "<!DOCTYPE html><html><head>"
        f"<title>{title} – Notion</title>"
        "</head><body>"
        f'<div class="notion-page-content">{body}</div>'
        "</body></html>"
    )


def create_config(tmp_path: Path, seed_url: str = SEED_URL, **overrides: Any) -> MirrorConfig:
    """Factory for MirrorConfig rooted in tmp_path.

    Keyword overrides are section models, e.g. crawling=CrawlingRules(max_pages=2).
    Asset retries are disabled so mocked HTTP responses are requested exactly once.
    """
    sections: dict[str, Any] = {
        "site": SiteConfig(seed_url=seed_url),
        "crawling": CrawlingRules(),
        "render": RenderConfig(),
        "assets": AssetConfig(max_retries=0, timeout_seconds=5.0),
        "output": OutputConfig(base_dir=str(tmp_path / "site")),
    }
    sections.update(overrides)
    return MirrorConfig(**sections)


class FakeRenderer:
    """In-memory Renderer returning canned results per URL.

    Values in `pages` may be an HTML string (rendered with status 200), an int
    status (rendered as a failed navigation response) or an exception instance
    (raised from render()). Unknown URLs render as 404.
    """

    def __init__(self, pages: dict[str, str | int | BaseException] | None = None) -> None:
        self.pages = pages or {}
        self.calls: list[str] = []
        self.started = False
        self.closed = False

    async def start(self) -> None:
        self.started = True

    async def render(self, url: str) -> RenderResult:
        self.calls.append(url)
        value = self.pages.get(url, 404)
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, int):
            return RenderResult(url=url, ok=False, status=value, html="", final_url=url)
        return RenderResult(url=url, ok=True, status=200, html=value, final_url=url)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def sample_config(tmp_path: Path) -> MirrorConfig:
    """Default configuration writing into a temporary directory."""
    return create_config(tmp_path)


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()
