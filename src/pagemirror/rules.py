"""URL normalization and crawl scoping.

URLNormalizer produces the dedup key used by the frontier and the visited map;
PageClassifier decides which URLs are pages of the mirrored site.
"""

import re
from urllib.parse import urldefrag, urljoin, urlparse


class URLNormalizer:
    """Centralized URL normalization.

    Utilities for:
    - Resolving relative URLs against a base and stripping fragments
    - Filtering schemes that are never fetched (mailto:, javascript:, data:, ...)
    """

    SAFE_SCHEMES = {"http", "https"}

    @staticmethod
    def normalize_url(url: str, base: str | None = None) -> str:
        """Resolve url against base and drop the fragment.

        Pure function: the result is the dedup key for the frontier and the
        visited map. Malformed input is returned unchanged instead of raising,
        so one bad link never aborts a crawl.

        Args:
            url: Absolute or relative URL
            base: Optional base URL for resolving relative references

        Returns:
            Absolute URL without fragment, or the original string on failure

        Examples:
            >>> URLNormalizer.normalize_url("https://h/p#a")
            'https://h/p'

            >>> URLNormalizer.normalize_url("../q?x=1#top", "https://h/a/b")
            'https://h/q?x=1'
        """
        try:
            absolute = urljoin(base, url) if base else url
            return urldefrag(absolute).url
        except (ValueError, TypeError):
            return url

    @staticmethod
    def filter_dangerous_schemes(url: str) -> bool:
        """Return True if URL scheme is http/https, False otherwise.

        Examples:
            >>> URLNormalizer.filter_dangerous_schemes("http://example.com")
            True

            >>> URLNormalizer.filter_dangerous_schemes("mailto:user@example.com")
            False
        """
        try:
            return urlparse(url).scheme.lower() in URLNormalizer.SAFE_SCHEMES
        except ValueError:
            return False


class PageClassifier:
    """Decides whether a URL is an in-scope page of the target site.

    A URL is in scope when its host equals the target host exactly and its
    path, with hyphens removed, contains a page identifier (by default a
    32-character hex id). Asset endpoints, search pages and other domains fall
    outside this shape.

    Examples:
        >>> classifier = PageClassifier("docs.example.com")
        >>> classifier.is_in_scope(
        ...     "https://docs.example.com/Intro-0123456789abcdef0123456789abcdef"
        ... )
        True
        >>> classifier.is_in_scope("https://docs.example.com/search")
        False
    """

    DEFAULT_PAGE_ID_PATTERN = r"[0-9a-f]{32}"

    def __init__(self, target_host: str, page_id_pattern: str = DEFAULT_PAGE_ID_PATTERN):
        self.target_host = target_host
        self._page_id = re.compile(page_id_pattern, re.IGNORECASE)

    @classmethod
    def from_seed(
        cls, seed_url: str, page_id_pattern: str = DEFAULT_PAGE_ID_PATTERN
    ) -> "PageClassifier":
        """Scope a classifier to the seed URL's host."""
        return cls(urlparse(seed_url).netloc, page_id_pattern)

    def is_same_host(self, url: str) -> bool:
        try:
            return urlparse(url).netloc == self.target_host
        except ValueError:
            return False

    def is_in_scope(self, url: str) -> bool:
        """Return True if url is a crawlable page on the target host.

        Malformed URLs classify as out of scope.
        """
        try:
            parsed = urlparse(url)
        except ValueError:
            return False

        if parsed.scheme not in URLNormalizer.SAFE_SCHEMES:
            return False
        if parsed.netloc != self.target_host:
            return False

        return bool(self._page_id.search(parsed.path.replace("-", "")))
