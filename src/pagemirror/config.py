"""Configuration system.

YAML configuration files validated by Pydantic models with type-safe schemas, sensible
defaults and clear error messages. Entry points: load_config() and config_from_seed().
"""

import re
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from pagemirror.exceptions import ConfigError

SEED_ENV_VAR = "PAGEMIRROR_SEED_URL"


class SiteConfig(BaseModel):
    """Website configuration for crawling."""

    seed_url: str = Field(
        ...,
        description="Absolute http(s) URL the crawl starts from. Its host scopes the crawl.",
    )
    title_suffixes: list[str] = Field(
        default_factory=lambda: [" – Notion", " - Notion"],
        description="Suffixes stripped from <title> before deriving page filenames",
    )

    @field_validator("seed_url")
    @classmethod
    def validate_seed_url(cls, v: str) -> str:
        """Require an absolute http(s) URL with a host."""
        v = v.strip()
        if not v:
            raise ValueError(
                "seed_url cannot be empty. Pass a public page URL, "
                "e.g. 'https://your.notion.site/0123456789abcdef0123456789abcdef'."
            )

        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"seed_url must be an absolute http(s) URL, got {v!r}")

        return v

    @property
    def target_host(self) -> str:
        """Host every in-scope page must share with the seed."""
        return urlparse(self.seed_url).netloc


class CrawlingRules(BaseModel):
    """Crawl scope and safety limits."""

    max_pages: int = Field(
        default=150,
        ge=1,
        description="Safety cap on attempted pages (persisted + skipped)",
    )
    page_id_pattern: str = Field(
        default=r"[0-9a-f]{32}",
        description=(
            "Regex searched (case-insensitive) in the URL path with hyphens removed. "
            "Only URLs whose path matches are treated as crawlable pages."
        ),
    )

    @field_validator("page_id_pattern")
    @classmethod
    def validate_page_id_pattern(cls, v: str) -> str:
        """Reject patterns that do not compile."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"page_id_pattern is not a valid regex: {e}") from e
        return v


class RenderConfig(BaseModel):
    """Headless browser rendering configuration (Playwright).

    Requires the browser binaries: playwright install chromium
    """

    wait_for: Literal["domcontentloaded", "load", "networkidle"] = Field(
        default="domcontentloaded",
        description="Navigation wait strategy",
    )
    navigation_timeout_ms: int = Field(
        default=45000,
        ge=1000,
        le=300000,
        description="Maximum time for page navigation in milliseconds",
    )
    content_selector: str = Field(
        default=".notion-page-content, main, body",
        description="Selector whose presence marks the page as ready for extraction",
    )
    content_timeout_ms: int = Field(
        default=35000,
        ge=0,
        le=300000,
        description="How long to wait for content_selector. Expiry is not an error.",
    )
    expand_disclosures: bool = Field(
        default=True,
        description="Click collapsed toggle/accordion buttons before capturing the DOM",
    )
    max_toggle_text_length: int = Field(
        default=300,
        ge=1,
        description="Buttons with more text than this are never clicked during expansion",
    )
    headless: bool = Field(
        default=True,
        description="Run the browser without a window",
    )
    viewport_width: int = Field(
        default=1440,
        ge=320,
        le=3840,
        description="Browser viewport width in pixels",
    )
    viewport_height: int = Field(
        default=900,
        ge=240,
        le=2160,
        description="Browser viewport height in pixels",
    )
    user_agent_override: str | None = Field(
        default=None,
        description="Custom user agent for the browser (None = browser default)",
    )


class AssetConfig(BaseModel):
    """Image download configuration."""

    download: bool = Field(
        default=True,
        description="Whether to download images into the asset directory",
    )
    max_concurrent_downloads: int = Field(
        default=6,
        ge=1,
        le=64,
        description="Maximum concurrent image downloads per page",
    )
    timeout_seconds: float = Field(
        default=45.0,
        gt=0.0,
        description="Timeout for a single asset download in seconds",
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries for transient asset failures (429/5xx, connection errors)",
    )
    max_asset_size_mb: float | None = Field(
        default=50.0,
        ge=0.1,
        description="Maximum asset size in MB (None = unlimited)",
    )
    max_redirects: int = Field(
        default=10,
        ge=0,
        le=20,
        description="Maximum redirects to follow per asset request",
    )


class OutputConfig(BaseModel):
    """Output directory layout."""

    base_dir: str = Field(
        default="site",
        description="Directory receiving one <slug>.html file per page",
    )
    assets_dir: str = Field(
        default="assets",
        description="Subdirectory of base_dir for downloaded assets",
    )
    inject_bundle: bool = Field(
        default=True,
        description="Append the reading stylesheet and disclosure-toggle script to each page",
    )

    @field_validator("assets_dir")
    @classmethod
    def validate_assets_dir(cls, v: str) -> str:
        """assets_dir is used verbatim in rewritten src attributes."""
        v = v.strip().strip("/")
        if not v or v in (".", "..") or "\\" in v:
            raise ValueError(f"assets_dir must be a relative directory name, got {v!r}")
        return v


class MirrorConfig(BaseModel):
    """Root configuration for a mirror run."""

    site: SiteConfig = Field(
        ...,
        description="Website configuration",
    )
    crawling: CrawlingRules = Field(
        default_factory=CrawlingRules,
        description="Crawl scope and limits",
    )
    render: RenderConfig = Field(
        default_factory=RenderConfig,
        description="Browser rendering configuration",
    )
    assets: AssetConfig = Field(
        default_factory=AssetConfig,
        description="Asset download configuration",
    )
    output: OutputConfig = Field(
        default_factory=OutputConfig,
        description="Output directory layout",
    )


def config_from_seed(seed_url: str | None) -> MirrorConfig:
    """Build a default configuration around a single seed URL.

    Raises:
        ConfigError: If the seed URL is missing or malformed
    """
    if not seed_url or not seed_url.strip():
        raise ConfigError(
            f"No seed URL given. Pass it as an argument or set {SEED_ENV_VAR}."
        )

    try:
        return MirrorConfig(site=SiteConfig(seed_url=seed_url))
    except ValidationError as e:
        raise ConfigError(f"Invalid seed URL {seed_url!r}:\n{e}") from e


def load_config(path: Path, seed_url: str | None = None) -> MirrorConfig:
    """Load and validate YAML configuration file.

    Args:
        path: Path to YAML configuration file
        seed_url: Optional seed URL overriding (or supplying) site.seed_url

    Returns:
        Validated MirrorConfig instance

    Raises:
        ConfigError: If config file is not found, invalid YAML, or validation fails
    """
    try:
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        if not path.is_file():
            raise ValueError(f"Configuration path is not a file: {path}")

        with path.open("r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f)

        if config_dict is None:
            raise ValueError(f"Configuration file is empty: {path}")

        if not isinstance(config_dict, dict):
            raise ValueError(
                f"Configuration file must contain a YAML object/dict, "
                f"got {type(config_dict).__name__}"
            )

        if seed_url:
            site = config_dict.setdefault("site", {}) or {}
            if not isinstance(site, dict):
                raise ValueError(f"'site' must be a mapping in {path}")
            site["seed_url"] = seed_url
            config_dict["site"] = site

        return MirrorConfig(**config_dict)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed for {path}:\n{e}") from e
    except ValueError as e:
        raise ConfigError(str(e)) from e
