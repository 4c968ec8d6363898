"""Mirror run orchestration.

Wires the renderer, asset downloader, output manager and crawler together, shows
Rich progress while crawling and prints the final summary. Main entry point:
run_mirror().
"""

import time
from collections import defaultdict
from pathlib import Path
from typing import Any, NotRequired, TypedDict

import httpx
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from pagemirror.assets import AssetDownloader
from pagemirror.config import MirrorConfig
from pagemirror.crawler import CrawlStats, MirrorCrawler, PageState
from pagemirror.outputs import OutputManager
from pagemirror.renderer import PlaywrightRenderer, Renderer


class MirrorSummary(TypedDict):
    """Type definition for the summary returned by run_mirror()."""

    pages_persisted: int
    pages_skipped: int
    pages_fixed: int
    assets_downloaded: int
    assets_skipped: int
    assets_failed: int
    total_bytes: int
    execution_time: float
    files: list[str]
    # category -> list of error dicts (each with "type")
    errors: dict[str, list[dict[str, Any]]]
    stopped_reason: NotRequired[str]  # Only set when the page cap stopped the crawl


async def run_mirror(
    config: MirrorConfig,
    renderer: Renderer | None = None,
    client: httpx.AsyncClient | None = None,
    console: Console | None = None,
) -> MirrorSummary:
    """Mirror the site described by config into its output directory.

    Args:
        config: Validated MirrorConfig
        renderer: Rendering engine (defaults to a PlaywrightRenderer)
        client: Optional HTTP client for asset downloads
        console: Rich console for progress and summary output

    Returns:
        MirrorSummary with page, asset and error statistics

    Raises:
        SetupError: If the output directories cannot be created
        RendererUnavailableError: If the rendering engine cannot start

    Workflow:
        1. Create the output layout (fatal if not writable)
        2. Start the renderer (fatal if unavailable)
        3. Crawl breadth-first with a progress bar toward the page cap
        4. Run the link fixup pass (done by the crawler)
        5. Print the summary and error tables
    """
    console = console or Console()
    output_manager = OutputManager(config)
    renderer = renderer or PlaywrightRenderer(config.render)

    _print_header(console, config)
    start_time = time.time()

    await renderer.start()
    try:
        async with AssetDownloader(config, output_manager, client=client) as downloader:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TextColumn("•"),
                TimeElapsedColumn(),
                console=console,
                transient=False,
            ) as progress:
                pages_task = progress.add_task(
                    "[cyan]Mirroring pages", total=config.crawling.max_pages
                )

                def on_page(url: str, state: PageState) -> None:
                    if state in (PageState.PERSISTED, PageState.SKIPPED):
                        progress.advance(pages_task)

                crawler = MirrorCrawler(
                    config, renderer, downloader, output_manager, on_page=on_page
                )
                crawl_stats = await crawler.run()
                progress.update(pages_task, total=crawl_stats.pages_attempted)

            summary = _build_summary(
                crawl_stats,
                downloader,
                [str(output_manager.page_path(e.filename)) for e in crawler.visited.values()],
                time.time() - start_time,
            )
    finally:
        await renderer.close()

    _print_summary(console, summary, config)
    return summary


def _build_summary(
    crawl_stats: CrawlStats,
    downloader: AssetDownloader,
    files: list[str],
    execution_time: float,
) -> MirrorSummary:
    errors: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for reason, entries in crawl_stats.skip_reasons.items():
        errors["page"].extend({**entry, "type": reason} for entry in entries)
    for error_type, entries in downloader.stats.errors.items():
        errors["asset"].extend({**entry, "type": error_type} for entry in entries)

    summary: MirrorSummary = {
        "pages_persisted": crawl_stats.pages_persisted,
        "pages_skipped": crawl_stats.pages_skipped,
        "pages_fixed": crawl_stats.pages_fixed,
        "assets_downloaded": crawl_stats.assets_downloaded,
        "assets_skipped": crawl_stats.assets_skipped,
        "assets_failed": crawl_stats.assets_failed,
        "total_bytes": crawl_stats.bytes_written + downloader.stats.total_bytes,
        "execution_time": execution_time,
        "files": files,
        "errors": dict(errors),
    }
    if crawl_stats.stopped_reason:
        summary["stopped_reason"] = crawl_stats.stopped_reason
    return summary


def _print_header(console: Console, config: MirrorConfig) -> None:
    console.print()
    console.print(f"[bold cyan]Seed:[/] {config.site.seed_url}")
    console.print(f"[bold]Host:[/] {config.site.target_host}")
    console.print()

    output_dir = Path(config.output.base_dir)
    console.print(f"[bold]Output directory:[/] {output_dir}")
    console.print(f"  • Assets: {output_dir / config.output.assets_dir}")
    console.print(f"[bold]Max pages:[/] {config.crawling.max_pages}")
    console.print()

    console.print("[bold green]Starting crawl...[/]\n")


def _format_size(total_bytes: int) -> str:
    total_mb = total_bytes / (1024 * 1024)
    return f"{total_bytes / 1024:.1f} KB" if total_mb < 0.1 else f"{total_mb:.2f} MB"


def _format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {seconds % 60:.1f}s"


def _build_summary_table(summary: MirrorSummary) -> Table:
    """Build the main statistics table.

    Args:
        summary: Summary returned by run_mirror()

    Returns:
        Rich Table with one metric per row
    """
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="green bold")

    table.add_row("Pages saved", str(summary["pages_persisted"]))
    if summary["pages_skipped"] > 0:
        table.add_row("Pages skipped", f"[red]{summary['pages_skipped']}[/red]")
    else:
        table.add_row("Pages skipped", "0")
    table.add_row("Pages with fixed links", str(summary["pages_fixed"]))

    table.add_row("Assets downloaded", str(summary["assets_downloaded"]))
    if summary["assets_skipped"] > 0:
        table.add_row("Assets already present", f"[yellow]{summary['assets_skipped']}[/yellow]")
    if summary["assets_failed"] > 0:
        table.add_row("Assets failed", f"[red]{summary['assets_failed']}[/red]")
    else:
        table.add_row("Assets failed", "0")

    table.add_row("Total size", _format_size(summary["total_bytes"]))
    table.add_row("Execution time", _format_duration(summary["execution_time"]))

    if "stopped_reason" in summary:
        table.add_row("Stopped", f"[yellow]{summary['stopped_reason']}[/yellow]")

    return table


def _build_error_table(summary: MirrorSummary) -> Table | None:
    """Build the error table, or None if nothing failed."""
    if not any(summary["errors"].values()):
        return None

    table = Table(show_header=True, box=None)
    table.add_column("Type", style="yellow", no_wrap=True)
    table.add_column("Count", style="red", justify="right")
    table.add_column("Examples", style="dim")

    for category, entries in summary["errors"].items():
        by_type: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for entry in entries:
            by_type[entry.get("type", "Unknown")].append(entry)

        for error_type, instances in by_type.items():
            examples = [str(i.get("url") or i.get("error", ""))[:80] for i in instances[:3]]
            example_text = "\n".join(examples)
            if len(instances) > 3:
                example_text += f"\n... and {len(instances) - 3} more"
            table.add_row(f"{category}/{error_type}", str(len(instances)), example_text)

    return table


def _print_summary(console: Console, summary: MirrorSummary, config: MirrorConfig) -> None:
    console.print()
    console.print("=" * 70)
    console.print("[bold green]Mirror Complete![/]\n")
    console.print(_build_summary_table(summary))

    error_table = _build_error_table(summary)
    if error_table is not None:
        console.print()
        console.print("[bold yellow]Errors:[/]")
        console.print(error_table)

    console.print()
    console.print(f"[bold]Output saved to:[/] {Path(config.output.base_dir)}")
    console.print(f"  • {len(summary['files'])} HTML pages")
    console.print()
    console.print("=" * 70)
    console.print()
