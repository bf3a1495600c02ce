from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from ghdeps.models import BotType, CheckStatus, CheckSummary, MergeableState, PullRequest


def build_pr(
    repository: str = "acme/api",
    number: int = 1,
    *,
    title: str | None = None,
    bot_type: BotType = BotType.RENOVATE,
    ci: CheckStatus = CheckStatus.SUCCESS,
    mergeable: MergeableState = MergeableState.MERGEABLE,
    labels: tuple[str, ...] = (),
    version: str = "1.0.0 -> 1.1.0",
    body: str = "",
    **overrides: Any,
) -> PullRequest:
    fields: dict[str, Any] = {
        "repository": repository,
        "number": number,
        "title": title if title is not None else f"Update dependency {number}",
        "body": body,
        "author": f"{bot_type.value}[bot]",
        "created_at": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        "url": f"https://github.com/{repository}/pull/{number}",
        "head_sha": f"sha{number}",
        "bot_type": bot_type,
        "check_summary": CheckSummary(status=ci, total=1 if ci is not CheckStatus.NONE else 0),
        "version": version,
        "mergeable_state": mergeable,
        "labels": labels,
    }
    fields.update(overrides)
    return PullRequest(**fields)


@pytest.fixture
def make_pr() -> Callable[..., PullRequest]:
    """Factory for `PullRequest` values with sensible defaults."""
    return build_pr
