from __future__ import annotations

from collections.abc import Iterable

from .models import PRKey, PullRequest


def sort_by_repo(prs: Iterable[PullRequest]) -> list[PullRequest]:
    """Return PRs ordered by repository short name (stable within a repository)."""
    return sorted(prs, key=lambda pr: pr.repo_name)


def searchable_text(pr: PullRequest) -> str:
    """Lower-cased composite string the search query is matched against."""
    return " ".join((pr.repo_name, pr.title, pr.bot_type.display_name, " ".join(pr.labels), pr.version)).lower()


def filter_prs(prs: list[PullRequest], query: str) -> list[PullRequest]:
    """Return PRs whose searchable text contains `query`, case-insensitively.

    Args:
        prs: PRs in display order.
        query: Raw search query.

    Returns:
        `prs` itself when the query is empty, otherwise a new list of the
        matching PRs in their original order.
    """
    if not query:
        return prs
    needle = query.lower()
    return [pr for pr in prs if needle in searchable_text(pr)]


class ListModel:
    """Full and filtered PR collections plus the cursor into the filtered one.

    `visible` is always recomputed from `all` and the query; it is never
    patched in place. `cursor` stays within `[0, len(visible) - 1]`, or 0
    when nothing is visible.
    """

    def __init__(self, prs: Iterable[PullRequest] = ()) -> None:
        self.query: str = ""
        self.cursor: int = 0
        self.all: list[PullRequest] = []
        self.visible: list[PullRequest] = []
        self.set_all(prs)

    def set_all(self, prs: Iterable[PullRequest]) -> None:
        """Replace the full list, restoring repository order and reapplying the query."""
        self.all = sort_by_repo(prs)
        self._refilter()

    def set_query(self, query: str) -> None:
        self.query = query
        self._refilter()

    def remove(self, key: PRKey) -> bool:
        """Drop the PR identified by `key` from both collections.

        Returns:
            True if the PR was present.
        """
        remaining = [pr for pr in self.all if pr.key != key]
        if len(remaining) == len(self.all):
            return False
        self.all = remaining
        self._refilter()
        return True

    def replace(self, pr: PullRequest) -> bool:
        """Swap in a refreshed copy of a PR, keeping its position.

        Returns:
            True if a PR with the same key was present.
        """
        for index, current in enumerate(self.all):
            if current.key == pr.key:
                self.all = [*self.all[:index], pr, *self.all[index + 1 :]]
                self._refilter()
                return True
        return False

    def get(self, key: PRKey) -> PullRequest | None:
        return next((pr for pr in self.all if pr.key == key), None)

    def __contains__(self, key: object) -> bool:
        return any(pr.key == key for pr in self.all)

    def move(self, delta: int) -> None:
        self.cursor += delta
        self._clamp()

    def selected(self) -> PullRequest | None:
        if not self.visible:
            return None
        return self.visible[self.cursor]

    def _refilter(self) -> None:
        self.visible = filter_prs(self.all, self.query)
        self._clamp()

    def _clamp(self) -> None:
        if not self.visible:
            self.cursor = 0
            return
        self.cursor = max(0, min(self.cursor, len(self.visible) - 1))
