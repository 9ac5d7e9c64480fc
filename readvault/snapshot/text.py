"""Plain-text helpers shared by the extractors."""

from __future__ import annotations

from datetime import datetime

ELLIPSIS = "..."


def truncate_at_word(text: str, max_length: int, min_ratio: float) -> str:
    """Cut *text* to *max_length* characters, preferring a word boundary.

    The cut backs up to the last space only when that space lies beyond
    ``max_length * min_ratio``; otherwise the text is hard-cut.  An ellipsis is
    appended whenever anything was removed.
    """
    text = text.strip()
    if len(text) <= max_length:
        return text
    cut = text[:max_length]
    last_space = cut.rfind(" ")
    if last_space > max_length * min_ratio:
        cut = cut[:last_space]
    return f"{cut.rstrip()}{ELLIPSIS}"


def make_excerpt(text: str, limit: int) -> str:
    """Excerpt rule used everywhere: word boundary within the last 20 % of *limit*."""
    return truncate_at_word(text, limit, 0.8)


def cap_text(text: str, limit: int) -> str:
    """Bound stored text to *limit* characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}{ELLIPSIS}"


def word_count(text: str) -> int:
    return len(text.split())


def format_byline_date(value: datetime) -> str:
    """Render a date the way bylines show it, e.g. ``Jan 5, 2026``."""
    return f"{value:%b} {value.day}, {value.year}"
