from __future__ import annotations

from datetime import datetime

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = SECONDS_PER_MINUTE * 60
SECONDS_PER_DAY = SECONDS_PER_HOUR * 24


def format_date(value: datetime) -> str:
    """Format a timestamp as YYYY-MM-DD for table columns."""
    return value.strftime("%Y-%m-%d")


def format_age(seconds: float) -> str:
    """Render an elapsed duration compactly, e.g. "42s ago" or "3h ago".

    Negative durations (clock skew) are reported as "0s ago".
    """
    whole = max(0, int(seconds))
    if whole < SECONDS_PER_MINUTE:
        return f"{whole}s ago"
    if whole < SECONDS_PER_HOUR:
        return f"{whole // SECONDS_PER_MINUTE}m ago"
    if whole < SECONDS_PER_DAY:
        return f"{whole // SECONDS_PER_HOUR}h ago"
    return f"{whole // SECONDS_PER_DAY}d ago"
