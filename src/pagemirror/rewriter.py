"""Link and image rewriting for rendered pages.

LinkRewriter parses a rendered DOM snapshot with lxml, points in-scope anchors at
local page files (the real filename when the target is already saved, a guess
from the link text otherwise), marks external anchors to open in a new tab,
discovers new pages for the frontier and collects image sources for download.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import urldefrag, urljoin

from lxml import etree
from lxml import html as lxml_html

from pagemirror.frontier import Frontier
from pagemirror.rules import PageClassifier, URLNormalizer
from pagemirror.slugs import DEFAULT_SLUG, SlugAllocator

if TYPE_CHECKING:
    from lxml.html import HtmlElement

    from pagemirror.crawler import VisitedEntry

BUNDLE_MARKER = "data-pagemirror"
# Source URL of an anchor whose href is still a guessed filename; resolved by the fixup pass
PROVISIONAL_ATTR = "data-pagemirror-href"
EXTERNAL_LINK_ATTRS = {"target": "_blank", "rel": "noopener noreferrer"}

BUNDLE_STYLE = """
body{max-width:900px;margin:40px auto;padding:0 20px;line-height:1.6;font-family:Inter,system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial,sans-serif;}
img{max-width:100%;height:auto;}
a{text-decoration:none;}
details{border:1px solid #e6e6e6;border-radius:8px;padding:10px 14px;margin:10px 0;}
summary{cursor:pointer;font-weight:600;}
code,pre{font-family:ui-monospace,SFMono-Regular,Menlo,Monaco,Consolas,monospace;}
"""

# Toggles the element named by aria-controls and keeps aria-expanded in sync.
# Native <details>/<summary> already work and are left alone.
BUNDLE_SCRIPT = """
(function(){
  document.addEventListener('click', function(e){
    var t = e.target.closest('[aria-controls], summary');
    if(!t || t.matches('summary')) return;
    var id = t.getAttribute('aria-controls');
    var el = id && document.getElementById(id);
    if(!el) return;
    var visible = getComputedStyle(el).display !== 'none';
    el.style.display = visible ? 'none' : 'block';
    if(t.getAttribute('aria-expanded') !== null) t.setAttribute('aria-expanded', String(!visible));
    e.preventDefault();
  }, true);
})();
"""


@dataclass
class PageSnapshot:
    """One rendered page, owned by the crawl iteration that produced it.

    Attributes:
        url: Normalized source URL of the page
        tree: Parsed and rewritten document
        title: Page title with site suffixes removed
        images: Absolute image URLs in first-seen order
        links: In-scope page URLs linked from this page, in document order
        enqueued: Subset of links that were new to the frontier
    """

    url: str
    tree: "HtmlElement"
    title: str
    images: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    enqueued: list[str] = field(default_factory=list)


class LinkRewriter:
    """Rewrites anchors and images of rendered pages for offline browsing.

    Example:
        >>> rewriter = LinkRewriter(classifier, allocator)
        >>> snapshot = rewriter.rewrite(html, url, visited, frontier)
        >>> rewriter.apply_assets(snapshot, {img_url: "ab12.png"}, lambda n: f"assets/{n}")
        >>> rewriter.inject_bundle(snapshot.tree)
        >>> markup = rewriter.serialize(snapshot.tree)
    """

    def __init__(
        self,
        classifier: PageClassifier,
        allocator: SlugAllocator,
        title_suffixes: list[str] | None = None,
    ) -> None:
        self.classifier = classifier
        self.allocator = allocator
        self.title_suffixes = title_suffixes or []

    def extract_title(self, tree: "HtmlElement") -> str:
        """Text of <title> minus configured site suffixes, "page" if empty."""
        title_el = tree.find(".//title")
        title = title_el.text_content().strip() if title_el is not None else ""
        for suffix in self.title_suffixes:
            if suffix and title.endswith(suffix):
                title = title[: -len(suffix)].strip()
        return title or DEFAULT_SLUG

    def rewrite(
        self,
        markup: str,
        page_url: str,
        visited: Mapping[str, "VisitedEntry"],
        frontier: Frontier,
    ) -> PageSnapshot:
        """Parse markup, rewrite anchors and collect images.

        Args:
            markup: Rendered HTML of the page
            page_url: Normalized URL of the page (base for relative links)
            visited: Already persisted pages (source URL -> entry)
            frontier: Crawl frontier receiving newly discovered pages

        Returns:
            PageSnapshot with the rewritten tree

        Raises:
            lxml.etree.ParserError: If markup cannot be parsed as a document
        """
        tree = lxml_html.document_fromstring(markup)
        snapshot = PageSnapshot(url=page_url, tree=tree, title=self.extract_title(tree))

        for anchor in tree.iter("a"):
            self._rewrite_anchor(anchor, snapshot, visited, frontier)

        for img in tree.iter("img"):
            src = self._resolve_image(img, page_url)
            if src and src not in snapshot.images:
                snapshot.images.append(src)

        return snapshot

    def _rewrite_anchor(
        self,
        anchor: "HtmlElement",
        snapshot: PageSnapshot,
        visited: Mapping[str, "VisitedEntry"],
        frontier: Frontier,
    ) -> None:
        href = (anchor.get("href") or "").strip()
        if not href or href.startswith("#"):
            return

        try:
            resolved = urljoin(snapshot.url, href)
        except ValueError:
            return
        if not URLNormalizer.filter_dangerous_schemes(resolved):
            return

        target = URLNormalizer.normalize_url(resolved)
        if not self.classifier.is_in_scope(target):
            anchor.set("href", resolved)
            for name, value in EXTERNAL_LINK_ATTRS.items():
                anchor.set(name, value)
            return

        entry = visited.get(target)
        if entry is not None:
            local = entry.filename
        else:
            local = self.allocator.guess(anchor.text_content())
            anchor.set(PROVISIONAL_ATTR, target)
        fragment = urldefrag(resolved).fragment
        anchor.set("href", f"{local}#{fragment}" if fragment else local)

        if target not in snapshot.links:
            snapshot.links.append(target)
        if entry is None and frontier.push(target):
            snapshot.enqueued.append(target)

    @staticmethod
    def _resolve_image(img: "HtmlElement", page_url: str) -> str | None:
        src = (img.get("src") or "").strip()
        if not src:
            return None
        absolute = URLNormalizer.normalize_url(src, base=page_url)
        if not URLNormalizer.filter_dangerous_schemes(absolute):
            return None
        return absolute

    def apply_assets(
        self,
        snapshot: PageSnapshot,
        mapping: Mapping[str, str],
        href_for: Callable[[str], str],
    ) -> int:
        """Point every <img> whose source was downloaded at its local file.

        Images without a mapping keep their original src. srcset is dropped
        from rewritten images so the browser uses the local file.

        Returns:
            Number of <img> elements rewritten
        """
        rewritten = 0
        for img in snapshot.tree.iter("img"):
            src = self._resolve_image(img, snapshot.url)
            if src is None or src not in mapping:
                continue
            img.set("src", href_for(mapping[src]))
            if "srcset" in img.attrib:
                del img.attrib["srcset"]
            rewritten += 1
        return rewritten

    @staticmethod
    def inject_bundle(tree: "HtmlElement") -> bool:
        """Append the reading stylesheet and toggle script once per document.

        Returns:
            True if the bundle was added, False if it was already present or
            the document has no body
        """
        body = tree.find("body")
        if body is None:
            return False
        if tree.xpath(f"//*[@{BUNDLE_MARKER}]"):
            return False

        head = tree.find("head")
        if head is None:
            head = etree.Element("head")
            tree.insert(0, head)

        style = etree.SubElement(head, "style")
        style.set(BUNDLE_MARKER, "style")
        style.text = BUNDLE_STYLE

        script = etree.SubElement(body, "script")
        script.set(BUNDLE_MARKER, "script")
        script.text = BUNDLE_SCRIPT
        return True

    @staticmethod
    def serialize(tree: "HtmlElement") -> str:
        return lxml_html.tostring(
            tree, doctype="<!DOCTYPE html>", encoding="unicode", method="html"
        )
