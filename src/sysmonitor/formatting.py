"""Formatting utilities for consistent output across CLI and reports."""

import re

_INT_RE = re.compile(r"\s*[+-]?\d+")


def kb_to_mb(kb: int) -> int:
    """Convert kilobytes to whole megabytes (floor)."""
    return kb // 1024


def format_percent(value: float) -> str:
    """Format a percentage with two decimals, e.g. "75.00%"."""
    return f"{value:.2f}%"


def parse_int(text: str | None) -> int | None:
    """Parse a user-typed integer.

    Leading whitespace and a sign are accepted. Trailing whitespace
    (including the newline) is ignored; any other trailing text, or no
    digits at all, returns None.
    """
    if text is None:
        return None
    stripped = text.rstrip()
    if not _INT_RE.fullmatch(stripped):
        return None
    return int(stripped)
