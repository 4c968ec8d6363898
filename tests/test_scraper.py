"""Tests for run_mirror orchestration and the printed summary."""

import io
from pathlib import Path

import pytest
from pytest_httpx import HTTPXMock
from rich.console import Console

from pagemirror.config import CrawlingRules
from pagemirror.exceptions import RendererUnavailableError, SetupError
from pagemirror.scraper import run_mirror
from tests.conftest import SEED_URL, FakeRenderer, create_config, make_html, page_url

GUIDE = page_url("Guide", "11111111111111111111111111111111")
MISSING = page_url("Missing", "22222222222222222222222222222222")
IMAGE = "https://cdn.example.com/shot.png"


def make_console() -> tuple[Console, io.StringIO]:
    buffer = io.StringIO()
    return Console(file=buffer, width=120, force_terminal=False), buffer


async def test_summary_counts(tmp_path: Path, httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=IMAGE, content=b"img")
    renderer = FakeRenderer(
        {
            SEED_URL: make_html(
                "Home", f'<a href="{GUIDE}">guide</a><a href="{MISSING}">gone</a>'
            ),
            GUIDE: make_html("Guide", f'<img src="{IMAGE}">'),
            MISSING: 404,
        }
    )
    console, buffer = make_console()

    summary = await run_mirror(create_config(tmp_path), renderer=renderer, console=console)

    assert summary["pages_persisted"] == 2
    assert summary["pages_skipped"] == 1
    assert summary["pages_fixed"] == 1
    assert summary["assets_downloaded"] == 1
    assert summary["assets_failed"] == 0
    assert summary["total_bytes"] > len(b"img")
    assert sorted(Path(f).name for f in summary["files"]) == ["guide.html", "home.html"]
    assert [e["url"] for e in summary["errors"]["page"]] == [MISSING]
    assert summary["errors"]["page"][0]["type"] == "status"
    assert "stopped_reason" not in summary
    assert renderer.started and renderer.closed

    output = buffer.getvalue()
    assert "Mirror Complete!" in output
    assert "Pages saved" in output
    assert "page/status" in output


async def test_page_cap_reported(tmp_path: Path) -> None:
    renderer = FakeRenderer(
        {SEED_URL: make_html("Home", f'<a href="{GUIDE}">g</a>'), GUIDE: make_html("Guide")}
    )
    config = create_config(tmp_path, crawling=CrawlingRules(max_pages=1))
    console, buffer = make_console()

    summary = await run_mirror(config, renderer=renderer, console=console)

    assert summary["pages_persisted"] == 1
    assert summary["stopped_reason"] == "max_pages"
    assert "max_pages" in buffer.getvalue()


async def test_renderer_closed_on_fatal_error(tmp_path: Path) -> None:
    renderer = FakeRenderer({SEED_URL: RendererUnavailableError("browser crashed")})
    console, _ = make_console()

    with pytest.raises(RendererUnavailableError):
        await run_mirror(create_config(tmp_path), renderer=renderer, console=console)

    assert renderer.closed


async def test_unwritable_output_fails_before_rendering(tmp_path: Path) -> None:
    config = create_config(tmp_path)
    Path(config.output.base_dir).write_text("occupied")
    renderer = FakeRenderer()
    console, _ = make_console()

    with pytest.raises(SetupError):
        await run_mirror(config, renderer=renderer, console=console)

    assert not renderer.started
    assert renderer.calls == []
