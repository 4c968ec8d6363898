"""Command line interface.

CLI module using Typer with Rich-formatted output for the crawl, validate and init
commands.
"""

# ruff: noqa: B008

import asyncio
import os
from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.table import Table
from rich.traceback import install as install_rich_traceback

from pagemirror import __version__
from pagemirror.config import (
    SEED_ENV_VAR,
    MirrorConfig,
    SiteConfig,
    config_from_seed,
    load_config,
)
from pagemirror.exceptions import ConfigError, MirrorError, RendererUnavailableError, SetupError

install_rich_traceback(show_locals=True)

console = Console()

app = typer.Typer(
    name="pagemirror",
    help="pagemirror - static offline mirrors of client-rendered sites",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"pagemirror version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """pagemirror - static offline mirrors of client-rendered sites."""
    pass


def _build_config(seed_url: str | None, config_path: Path | None) -> MirrorConfig:
    if config_path is not None:
        return load_config(config_path, seed_url=seed_url)
    return config_from_seed(seed_url)


@app.command()
def crawl(
    seed_url: str | None = typer.Argument(
        None,
        help=f"Seed page URL (or set {SEED_ENV_VAR})",
        envvar=SEED_ENV_VAR,
        show_envvar=True,
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML config file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    output: str | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Override output directory",
    ),
    max_pages: int | None = typer.Option(
        None,
        "--max-pages",
        help="Maximum number of pages to visit",
        min=1,
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        help="Concurrent image downloads per page",
        min=1,
        max=64,
    ),
    no_expand: bool = typer.Option(
        False,
        "--no-expand",
        help="Don't click collapsed toggles before capturing pages",
    ),
    headed: bool = typer.Option(
        False,
        "--headed",
        help="Show the browser window",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Verbose logging",
    ),
) -> None:
    """Mirror a site starting from SEED_URL.

    Visits every same-host page reachable from the seed, saves each one as a
    standalone HTML file with local links and images, and exits 0 once the
    queue is drained, even if some pages were skipped.
    """
    from pagemirror.utils import setup_logging

    setup_logging(verbose=verbose)

    try:
        if config is not None:
            console.print(f"[cyan]Loading configuration from:[/cyan] {config}")
        mirror_config = _build_config(seed_url, config)

        if output:
            mirror_config.output.base_dir = output
            console.print(f"[yellow]Output directory overridden:[/yellow] {output}")

        if max_pages:
            mirror_config.crawling.max_pages = max_pages
            console.print(f"[yellow]Max pages limit set:[/yellow] {max_pages}")

        if concurrency:
            mirror_config.assets.max_concurrent_downloads = concurrency

        if no_expand:
            mirror_config.render.expand_disclosures = False

        if headed:
            mirror_config.render.headless = False

        from pagemirror.scraper import run_mirror

        summary = asyncio.run(run_mirror(mirror_config))

        if summary and summary.get("pages_persisted", 0) == 0:
            console.print("[yellow]No pages were saved[/yellow]")
        else:
            console.print("[green]Mirror completed successfully![/green]")

    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        if verbose:
            console.print_exception()
        raise typer.Exit(code=1) from None

    except SetupError as e:
        console.print(f"[red]Output directory error:[/red] {e}")
        raise typer.Exit(code=1) from None

    except RendererUnavailableError as e:
        console.print(f"[red]Renderer unavailable:[/red] {e}")
        if verbose:
            console.print_exception()
        raise typer.Exit(code=1) from None

    except MirrorError as e:
        console.print(f"[red]Mirror failed:[/red] {e}")
        if verbose:
            console.print_exception()
        raise typer.Exit(code=1) from None

    except KeyboardInterrupt:
        console.print("\n[yellow]Mirror interrupted by user[/yellow]")
        raise typer.Exit(code=130) from None

    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        if verbose:
            console.print_exception()
        else:
            console.print("[dim]Use --verbose to see full traceback[/dim]")
        raise typer.Exit(code=1) from None


@app.command()
def validate(
    config_path: Path = typer.Argument(
        ...,
        help="Path to YAML config file to validate",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
) -> None:
    """Validate a pagemirror configuration file.

    Checks YAML syntax and validates every field against the schema. The seed
    URL may be omitted from the file if it is set in the environment.
    """
    try:
        console.print(f"[cyan]Validating configuration:[/cyan] {config_path}")

        mirror_config = load_config(config_path, seed_url=os.environ.get(SEED_ENV_VAR))

        console.print("[green][OK] Configuration is valid![/green]\n")

        table = Table(title="Configuration Summary")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="white")

        table.add_row("Seed URL", mirror_config.site.seed_url)
        table.add_row("Target Host", mirror_config.site.target_host)
        table.add_row("Page ID Pattern", mirror_config.crawling.page_id_pattern)
        table.add_row("Max Pages", str(mirror_config.crawling.max_pages))
        table.add_row("Expand Toggles", "Yes" if mirror_config.render.expand_disclosures else "No")
        table.add_row("Output Directory", mirror_config.output.base_dir)
        table.add_row("Download Images", "Yes" if mirror_config.assets.download else "No")

        console.print(table)

    except ConfigError as e:
        console.print("[red][FAIL] Configuration validation failed:[/red]\n")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None

    except Exception as e:
        console.print(f"[red][ERROR] Unexpected error:[/red] {e}")
        console.print_exception()
        raise typer.Exit(code=1) from None


@app.command()
def init(
    output_path: Path | None = typer.Argument(
        None,
        help="Output path for generated config file (default: pagemirror.yaml)",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing file",
    ),
) -> None:
    """Create a new pagemirror configuration file interactively."""
    if output_path is None:
        output_path = Path("pagemirror.yaml")

    if output_path.exists() and not force:
        console.print(f"[red]Error:[/red] File already exists: {output_path}")
        console.print("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(code=1)

    try:
        console.print("[cyan]Create a new pagemirror configuration[/cyan]\n")

        seed_url = typer.prompt("Seed URL (e.g., 'https://example.notion.site/Home-0123...')")
        base_dir = typer.prompt("Output directory", default="site")
        max_pages = typer.prompt("Maximum pages", default=150, type=int)

        try:
            SiteConfig(seed_url=seed_url)
        except ValueError:
            console.print("[red]Error:[/red] Invalid URL format")
            raise typer.Exit(code=1) from None

        config_template = {
            "site": {"seed_url": seed_url.strip()},
            "crawling": {"max_pages": max_pages},
            "render": {"expand_disclosures": True, "headless": True},
            "assets": {"download": True, "max_concurrent_downloads": 6},
            "output": {"base_dir": base_dir, "assets_dir": "assets"},
        }

        with output_path.open("w", encoding="utf-8") as f:
            f.write("# pagemirror configuration\n\n")
            yaml.dump(config_template, f, default_flow_style=False, sort_keys=False)

        console.print(f"\n[green][OK] Configuration created:[/green] {output_path}")
        console.print("\n[dim]Next steps:[/dim]")
        console.print(f"  1. Edit {output_path} to customize settings")
        console.print(f"  2. Run: pagemirror validate {output_path}")
        console.print(f"  3. Run: pagemirror crawl --config {output_path}")

    except typer.Exit:
        raise

    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(code=130) from None

    except Exception as e:
        console.print(f"[red]Error creating configuration:[/red] {e}")
        console.print_exception()
        raise typer.Exit(code=1) from None


if __name__ == "__main__":
    app()
