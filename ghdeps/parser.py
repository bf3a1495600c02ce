from __future__ import annotations

import re

from .models import BotType

# Dependabot: "Bumps foo from 1.0.0 to 1.1.0."
DEPENDABOT_PATTERN = re.compile(r"from\s+(\S+)\s+to\s+(\S+)")
# Renovate: "1.0.0 -> 1.1.0" or "`1.0.0` -> `1.1.0`"
RENOVATE_PATTERN = re.compile(r"`?([^`\s]+)`?\s+->\s+`?([^`\s]+)`?")

_PATTERNS: dict[BotType, re.Pattern[str]] = {
    BotType.DEPENDABOT: DEPENDABOT_PATTERN,
    BotType.RENOVATE: RENOVATE_PATTERN,
    BotType.GITHUB_ACTIONS: RENOVATE_PATTERN,
}


def extract_version(body: str, bot_type: BotType | None) -> str:
    """Extract the version change announced in a PR body.

    Args:
        body: PR description.
        bot_type: Bot that wrote the body; selects the pattern.

    Returns:
        "X -> Y", or "-" when nothing matches.
    """
    pattern = _PATTERNS.get(bot_type) if bot_type is not None else None
    if pattern is None:
        return "-"
    match = pattern.search(body or "")
    if not match:
        return "-"
    return f"{match.group(1).strip()} -> {match.group(2).strip()}"
