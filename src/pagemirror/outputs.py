"""Output layout, page persistence and the post-crawl link fixup pass.

OutputManager owns every path under the output directory: page files, the asset
directory and the relative asset hrefs written into pages.
"""

import errno
import html
import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles

from pagemirror.config import MirrorConfig
from pagemirror.exceptions import SetupError
from pagemirror.rewriter import EXTERNAL_LINK_ATTRS, PROVISIONAL_ATTR

if TYPE_CHECKING:
    from pagemirror.crawler import VisitedEntry

logger = logging.getLogger(__name__)

ANCHOR_TAG = re.compile(r"<a\b[^>]*>", re.IGNORECASE)
PROVISIONAL_VALUE = re.compile(rf'\s{PROVISIONAL_ATTR}="([^"]*)"')
HREF_VALUE = re.compile(r'(\shref=")([^"]*)(")')


def resolve_provisional_anchor(tag: str, visited: Mapping[str, "VisitedEntry"]) -> str:
    """Settle the href of one serialized <a> start tag carrying a guessed filename.

    Tags without the provisional marker are returned unchanged. The fragment of
    the guessed href is kept. A target that was never saved falls back to its
    absolute URL and opens in a new tab like any other external link.
    """
    marker = PROVISIONAL_VALUE.search(tag)
    if marker is None:
        return tag

    target = html.unescape(marker.group(1))
    tag = tag[: marker.start()] + tag[marker.end() :]
    entry = visited.get(target)

    def settle(m: re.Match[str]) -> str:
        fragment = html.unescape(m.group(2)).partition("#")[2]
        href = entry.filename if entry is not None else target
        if fragment:
            href = f"{href}#{fragment}"
        return f"{m.group(1)}{html.escape(href)}{m.group(3)}"

    tag = HREF_VALUE.sub(settle, tag, count=1)
    if entry is None:
        for name, value in EXTERNAL_LINK_ATTRS.items():
            if not re.search(rf"\s{name}=", tag):
                tag = f'{tag[:-1]} {name}="{value}">'
    return tag


class OutputManager:
    """Manages the mirror's on-disk layout.

    Layout:
        <base_dir>/<slug>.html       one file per persisted page
        <base_dir>/<assets_dir>/     one file per unique downloaded asset

    Examples:
        >>> manager = OutputManager(config)
        >>> manager.page_path("intro.html")
        PosixPath('site/intro.html')
        >>> manager.asset_href("3f1c...png")
        'assets/3f1c...png'
    """

    def __init__(self, config: MirrorConfig) -> None:
        """Create the output and asset directories.

        Raises:
            SetupError: If either directory cannot be created
        """
        self.config = config
        self.base_dir = Path(config.output.base_dir)
        self.assets_dir = self.base_dir / config.output.assets_dir

        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            self.assets_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            if e.errno == errno.EACCES:
                reason = "permission denied"
            elif e.errno == errno.ENOSPC:
                reason = "disk full"
            else:
                reason = e.strerror or str(e)
            raise SetupError(f"Cannot create output directory {self.assets_dir}: {reason}") from e

    def page_path(self, filename: str) -> Path:
        return self.base_dir / filename

    def asset_path(self, filename: str) -> Path:
        return self.assets_dir / filename

    def asset_href(self, filename: str) -> str:
        """Relative reference to an asset from a page in base_dir."""
        return f"{self.config.output.assets_dir}/{filename}"

    async def write_page(self, filename: str, markup: str) -> int:
        """Write a page file and return the number of bytes written.

        The page only appears under its final name once fully written.
        """
        data = markup.encode("utf-8")
        file_path = self.page_path(filename)
        part_path = file_path.with_name(f"{filename}.part")
        try:
            async with aiofiles.open(part_path, "wb") as f:
                await f.write(data)
            part_path.replace(file_path)
        except OSError:
            part_path.unlink(missing_ok=True)
            raise
        return len(data)

    async def fixup_links(self, visited: Mapping[str, "VisitedEntry"]) -> int:
        """Replace absolute URLs of visited pages with their final filenames.

        Runs once after the crawl. Every persisted page is re-read and:

        1. Anchors still carrying a guessed href (marked with their source URL)
           get the real filename if that page was saved, or the absolute
           source URL if it never was, so no link points at a missing file.
        2. Each literal occurrence of a visited page's source URL (raw, or with
           `&` escaped as it appears inside serialized attributes) becomes that
           page's filename. All substitutions happen in one pass; longer URLs
           are matched first so a URL that prefixes another never splits it.

        Args:
            visited: Source URL -> VisitedEntry for every persisted page

        Returns:
            Number of page files that changed
        """
        if not visited:
            return 0

        replacements: dict[str, str] = {}
        for url, entry in visited.items():
            replacements[url] = entry.filename
            escaped = html.escape(url, quote=False)
            if escaped != url:
                replacements[escaped] = entry.filename

        pattern = re.compile(
            "|".join(re.escape(u) for u in sorted(replacements, key=len, reverse=True))
        )

        changed = 0
        for entry in visited.values():
            path = self.page_path(entry.filename)
            try:
                async with aiofiles.open(path, encoding="utf-8") as f:
                    original = await f.read()
            except OSError as e:
                logger.warning(f"Fixup skipped for {path}: {e}")
                continue

            updated = ANCHOR_TAG.sub(
                lambda m: resolve_provisional_anchor(m.group(0), visited), original
            )
            updated = pattern.sub(lambda m: replacements[m.group(0)], updated)
            if updated == original:
                continue

            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(updated)
            changed += 1
            logger.debug(f"Fixed links in {entry.filename}")

        return changed
