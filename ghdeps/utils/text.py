from __future__ import annotations

from collections.abc import Sequence

from ..models import MergeableState

ELLIPSIS = "..."

MERGEABLE_SYMBOLS: dict[MergeableState, str] = {
    MergeableState.MERGEABLE: "✓",
    MergeableState.CONFLICTING: "✗",
    MergeableState.UNKNOWN: "?",
}


def truncate(text: str, max_len: int) -> str:
    """Cut `text` to at most `max_len` characters."""
    if len(text) <= max_len:
        return text
    return text[:max_len]


def truncate_with_ellipsis(text: str, max_len: int) -> str:
    """Cut `text` to `max_len` characters, marking the cut with "...".

    Args:
        text: Input string.
        max_len: Maximum length of the result, ellipsis included.

    Returns:
        The original string when it fits, otherwise a shortened copy.
    """
    if len(text) <= max_len:
        return text
    if max_len <= len(ELLIPSIS):
        return text[:max_len]
    return text[: max_len - len(ELLIPSIS)] + ELLIPSIS


def format_labels(labels: Sequence[str], max_len: int) -> str:
    if not labels:
        return "-"
    return truncate_with_ellipsis(",".join(labels), max_len)


def format_mergeable(state: MergeableState) -> str:
    return MERGEABLE_SYMBOLS.get(state, "-")
