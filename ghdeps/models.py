from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# (repository, number) identifies a pull request across refreshes
PRKey = tuple[str, int]


class BotType(str, Enum):
    """Dependency update bots recognised by gh-deps."""

    RENOVATE = "renovate"
    DEPENDABOT = "dependabot"
    GITHUB_ACTIONS = "github-actions"

    @property
    def display_name(self) -> str:
        return self.value

    @property
    def uses_checkbox_rebase(self) -> bool:
        """Renovate rebases when the checkbox in its PR body is ticked."""
        return self is BotType.RENOVATE

    @property
    def rebase_command(self) -> str:
        """Comment that asks the bot to rebase, or an empty string."""
        if self is BotType.DEPENDABOT:
            return "@dependabot rebase"
        return ""

    @property
    def supports_rebase(self) -> bool:
        return self.uses_checkbox_rebase or bool(self.rebase_command)


BOT_LOGINS: dict[BotType, tuple[str, ...]] = {
    BotType.RENOVATE: ("app/renovate", "renovate[bot]", "renovate"),
    BotType.DEPENDABOT: ("app/dependabot", "dependabot[bot]", "dependabot"),
    BotType.GITHUB_ACTIONS: ("app/github-actions", "github-actions[bot]", "github-actions"),
}


def detect_bot(author: str) -> BotType | None:
    """Return the bot that authored a PR, or None for human authors.

    Args:
        author: Author login as reported by GitHub.

    Returns:
        The matching `BotType`, or None when no known login pattern matches.
    """
    author = author.lower()
    for bot_type, logins in BOT_LOGINS.items():
        if any(login in author for login in logins):
            return bot_type
    return None


class CheckStatus(str, Enum):
    SUCCESS = "✅"
    FAILURE = "❌"
    PENDING = "⏳"
    NONE = "-"


class MergeableState(str, Enum):
    MERGEABLE = "MERGEABLE"
    CONFLICTING = "CONFLICTING"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: str | None) -> MergeableState:
        try:
            return cls(value or "UNKNOWN")
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class CheckSummary:
    status: CheckStatus = CheckStatus.NONE
    total: int = 0


_ROLLUP_STATES: dict[str, CheckStatus] = {
    "SUCCESS": CheckStatus.SUCCESS,
    "FAILURE": CheckStatus.FAILURE,
    "ERROR": CheckStatus.FAILURE,
    "PENDING": CheckStatus.PENDING,
    "EXPECTED": CheckStatus.PENDING,
}


def summarize_rollup(state: str | None, total: int = 0) -> CheckSummary:
    """Map a GraphQL `statusCheckRollup.state` onto a `CheckSummary`.

    Args:
        state: Rollup state string, or None when the commit has no checks.
        total: Number of contexts behind the rollup, when known.

    Returns:
        The aggregated summary; unknown or missing states map to `CheckStatus.NONE`.
    """
    if not state:
        return CheckSummary()
    return CheckSummary(status=_ROLLUP_STATES.get(state.upper(), CheckStatus.NONE), total=total)


@dataclass(frozen=True)
class PullRequest:
    """A dependency update pull request as shown in the list.

    Instances are never mutated; refreshed data replaces a whole item keyed by
    `key`.

    Attributes:
        repository: "owner/repo" string identifying the repository.
        number: Pull request number.
        title: PR title.
        body: PR description (Markdown).
        author: Login of the PR author.
        created_at: Creation time.
        url: Web URL to the PR.
        head_sha: Head commit SHA.
        bot_type: Bot that authored the PR.
        check_summary: Aggregated CI status of the head commit.
        version: Extracted "X -> Y" version change, or "-".
        mergeable_state: Server-computed mergeability.
        labels: Label names.
    """

    repository: str
    number: int
    title: str
    body: str
    author: str
    created_at: datetime
    url: str
    head_sha: str
    bot_type: BotType
    check_summary: CheckSummary = field(default_factory=CheckSummary)
    version: str = "-"
    mergeable_state: MergeableState = MergeableState.UNKNOWN
    labels: tuple[str, ...] = ()

    @property
    def key(self) -> PRKey:
        return (self.repository, self.number)

    @property
    def repo_name(self) -> str:
        """Repository short name (the part after the owner)."""
        parts = self.repository.split("/")
        if len(parts) >= 2:
            return parts[1]
        return self.repository

    @property
    def ci_status(self) -> CheckStatus:
        return self.check_summary.status

    @property
    def is_settled(self) -> bool:
        """True once GitHub has finished computing CI and mergeability."""
        return self.ci_status is not CheckStatus.PENDING and self.mergeable_state is not MergeableState.UNKNOWN
