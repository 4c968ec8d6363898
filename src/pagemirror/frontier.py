"""Breadth-first crawl frontier with exactly-once enqueueing."""

from collections import deque
from collections.abc import Iterable, Iterator


class Frontier:
    """FIFO queue of normalized URLs plus the set of URLs ever enqueued.

    A URL is accepted at most once per run: push() of a URL that is queued,
    being processed or already finished is a no-op. Dedup is by the
    normalized URL string only.

    Example:
        >>> frontier = Frontier(["https://h/a"])
        >>> frontier.push("https://h/b")
        True
        >>> frontier.push("https://h/a")
        False
        >>> frontier.pop()
        'https://h/a'
    """

    def __init__(self, urls: Iterable[str] = ()) -> None:
        self._queue: deque[str] = deque()
        self.seen: set[str] = set()
        for url in urls:
            self.push(url)

    def push(self, url: str) -> bool:
        """Enqueue url unless it was seen before. Returns True if enqueued."""
        if url in self.seen:
            return False
        self.seen.add(url)
        self._queue.append(url)
        return True

    def pop(self) -> str:
        """Remove and return the oldest queued URL.

        Raises:
            IndexError: If the frontier is empty
        """
        return self._queue.popleft()

    def snapshot(self) -> list[str]:
        """Queued URLs in visit order (for logging and tests)."""
        return list(self._queue)

    def __contains__(self, url: object) -> bool:
        return url in self.seen

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
