"""Page filename allocation.

Turns page titles into unique, filesystem-safe `<slug>.html` names for one run.
"""

from slugify import slugify

MAX_SLUG_LENGTH = 60
DEFAULT_SLUG = "page"
PAGE_SUFFIX = ".html"


def slugify_title(title: str) -> str:
    """Lowercase, ASCII-fold and hyphenate a title, capped at 60 characters.

    Examples:
        >>> slugify_title("Café Menu & Prices")
        'cafe-menu-prices'
        >>> slugify_title("!!!")
        'page'
    """
    slug = slugify(title or "", lowercase=True, allow_unicode=False)
    slug = slug[:MAX_SLUG_LENGTH].strip("-")
    return slug or DEFAULT_SLUG


class SlugAllocator:
    """Allocates unique page filenames within a single run.

    The first page titled "Intro" gets intro.html, the next intro-2.html,
    then intro-3.html. Allocation is deterministic for a given sequence of
    titles. guess() derives a name for a page that has not been visited yet
    without reserving it.
    """

    def __init__(self) -> None:
        self.used: set[str] = set()

    def allocate(self, title: str) -> str:
        """Reserve and return a unique filename for title."""
        base = slugify_title(title)
        slug = base
        counter = 2
        while slug in self.used:
            slug = f"{base}-{counter}"
            counter += 1

        self.used.add(slug)
        return f"{slug}{PAGE_SUFFIX}"

    def release(self, filename: str) -> None:
        """Give back a filename whose page was never persisted."""
        self.used.discard(filename.removesuffix(PAGE_SUFFIX))

    def guess(self, text: str) -> str:
        """Provisional filename for a link whose target is not visited yet."""
        return f"{slugify_title(text.strip())}{PAGE_SUFFIX}"

    def __contains__(self, filename: str) -> bool:
        return filename.removesuffix(PAGE_SUFFIX) in self.used

    def __len__(self) -> int:
        return len(self.used)
