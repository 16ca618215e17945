"""Pagination and formatting helpers shared by the state machine and views."""
from __future__ import annotations

from typing import Sequence, TypeVar

T = TypeVar("T")

ELLIPSIS = "…"


def total_pages(length: int, page_size: int) -> int:
    """Return the number of pages needed to show *length* items."""

    if page_size <= 0 or length <= 0:
        return 0
    return -(-length // page_size)


def paginate(items: Sequence[T], page: int, page_size: int) -> Sequence[T]:
    """Return the slice of *items* shown on *page* (empty when out of range)."""

    if page < 0 or page_size <= 0:
        return items[:0]
    start = page * page_size
    return items[start : start + page_size]


def items_on_page(length: int, page: int, page_size: int) -> int:
    """Return how many of *length* items land on *page*."""

    if page < 0 or page_size <= 0:
        return 0
    remaining = length - page * page_size
    return max(0, min(page_size, remaining))


def truncate(text: str, width: int) -> str:
    """Shorten *text* to *width* characters, marking the cut with an ellipsis."""

    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    return text[:width] + ELLIPSIS


def format_clock(seconds: float) -> str:
    """Return ``seconds`` as ``HH:MM:SS``."""

    total = max(int(seconds), 0)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02}:{minutes:02}:{secs:02}"


__all__ = ["format_clock", "items_on_page", "paginate", "total_pages", "truncate"]
