"""Unit tests for the crawl frontier."""

import pytest

from pagemirror.frontier import Frontier


def test_fifo_order() -> None:
    frontier = Frontier(["https://h/a"])
    frontier.push("https://h/b")
    frontier.push("https://h/c")

    assert [frontier.pop() for _ in range(3)] == ["https://h/a", "https://h/b", "https://h/c"]
    assert not frontier


def test_push_is_exactly_once() -> None:
    frontier = Frontier()
    assert frontier.push("https://h/a") is True
    assert frontier.push("https://h/a") is False
    assert len(frontier) == 1


def test_popped_url_is_not_requeued() -> None:
    frontier = Frontier(["https://h/a"])
    assert frontier.pop() == "https://h/a"
    assert frontier.push("https://h/a") is False
    assert "https://h/a" in frontier
    assert len(frontier) == 0


def test_duplicate_seed_urls_collapse() -> None:
    frontier = Frontier(["https://h/a", "https://h/a", "https://h/b"])
    assert frontier.snapshot() == ["https://h/a", "https://h/b"]
    assert list(frontier) == ["https://h/a", "https://h/b"]


def test_pop_empty_raises() -> None:
    with pytest.raises(IndexError):
        Frontier().pop()
