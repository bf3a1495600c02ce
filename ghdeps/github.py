from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx

from .models import MergeableState, PullRequest, detect_bot, summarize_rollup
from .parser import extract_version

# Set up logging
logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
GRAPHQL_URL = f"{GITHUB_API}/graphql"

# Rate limiting constants
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"
RATE_LIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"
FORBIDDEN_STATUS_CODE = 403

REPOSITORIES_PER_PAGE = 50

RENOVATE_REBASE_CHECKBOX = re.compile(r"^(\s*-\s*\[)\s(\]\s*(?:<!--[^>]*-->)?\s*.*?rebase.*?)$", re.MULTILINE)

_PULL_REQUEST_FIELDS = """
    number
    title
    body
    createdAt
    url
    headRefOid
    mergeable
    state
    author { login }
    labels(first: 20) { nodes { name } }
    commits(last: 1) {
      nodes { commit { statusCheckRollup { state contexts { totalCount } } } }
    }
"""

_REPOSITORIES_FRAGMENT = (
    """
    repositories(first: %d, after: $cursor) {
      pageInfo { hasNextPage endCursor }
      nodes {
        nameWithOwner
        pullRequests(first: 100, states: OPEN) { nodes { %s } }
      }
    }
"""
    % (REPOSITORIES_PER_PAGE, _PULL_REQUEST_FIELDS)
)

ORG_REPOSITORIES_QUERY = (
    "query($login: String!, $cursor: String) { owner: organization(login: $login) { %s } }" % _REPOSITORIES_FRAGMENT
)
USER_REPOSITORIES_QUERY = (
    "query($login: String!, $cursor: String) { owner: user(login: $login) { %s } }" % _REPOSITORIES_FRAGMENT
)
PULL_REQUEST_QUERY = (
    "query($owner: String!, $name: String!, $number: Int!) {"
    " repository(owner: $owner, name: $name) { nameWithOwner pullRequest(number: $number) { %s } } }"
    % _PULL_REQUEST_FIELDS
)
RATE_LIMIT_QUERY = "query { rateLimit { limit remaining resetAt } }"


class GitHubAPIError(Exception):
    """GitHub rejected a request or answered with GraphQL errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RebaseCheckboxNotFoundError(ValueError):
    """The PR body carries no unchecked rebase checkbox."""


@dataclass(frozen=True)
class MergeResult:
    merged: bool
    message: str
    sha: str = ""


@dataclass(frozen=True)
class RateLimitInfo:
    limit: int
    remaining: int
    reset_at: str


def parse_repository(repository: str) -> tuple[str, str]:
    """Split "owner/repo" into its two parts.

    Raises:
        ValueError: If `repository` is not exactly "owner/repo".
    """
    parts = repository.split("/")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"invalid repository format: {repository} (expected owner/repo)")
    return parts[0], parts[1]


def check_rebase_checkbox(body: str) -> str:
    """Tick Renovate's rebase checkbox in a PR body.

    Args:
        body: Current PR body.

    Returns:
        The body with every unchecked rebase checkbox turned into "[x]".

    Raises:
        RebaseCheckboxNotFoundError: If no unchecked rebase checkbox exists.
    """
    updated, count = RENOVATE_REBASE_CHECKBOX.subn(r"\1x\2", body or "")
    if count == 0:
        raise RebaseCheckboxNotFoundError("rebase checkbox not found in PR body")
    return updated


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def pull_request_from_node(repository: str, node: dict[str, Any], skip_checks: bool = False) -> PullRequest | None:
    """Build a `PullRequest` from a GraphQL pull request node.

    Args:
        repository: "owner/repo" the node belongs to.
        node: GraphQL `PullRequest` object.
        skip_checks: Ignore the CI rollup and report no checks.

    Returns:
        The pull request, or None when the author is not a dependency bot.
    """
    author = (node.get("author") or {}).get("login", "")
    bot_type = detect_bot(author)
    if bot_type is None:
        logger.debug(f"{repository}#{node.get('number')} not a bot (author: {author})")
        return None
    rollup = None
    if not skip_checks:
        commits = (node.get("commits") or {}).get("nodes") or []
        if commits:
            rollup = (commits[0].get("commit") or {}).get("statusCheckRollup")
    if rollup:
        total = ((rollup.get("contexts") or {}).get("totalCount")) or 0
        summary = summarize_rollup(rollup.get("state"), total)
        logger.debug(f"{repository}#{node['number']} rollup state: {rollup.get('state')}")
    else:
        summary = summarize_rollup(None)
    body = node.get("body") or ""
    return PullRequest(
        repository=repository,
        number=node["number"],
        title=node.get("title", ""),
        body=body,
        author=author,
        created_at=_parse_timestamp(node.get("createdAt")),
        url=node.get("url", ""),
        head_sha=node.get("headRefOid", ""),
        bot_type=bot_type,
        check_summary=summary,
        version=extract_version(body, bot_type),
        mergeable_state=MergeableState.parse(node.get("mergeable")),
        labels=tuple(label["name"] for label in ((node.get("labels") or {}).get("nodes") or [])),
    )


class GitHubClient:
    """GitHub API client for dependency update pull requests."""

    def __init__(
        self,
        token: str | None,
        max_retries: int = 3,
        skip_checks: bool = False,
        exclude_repositories: Iterable[str] = (),
    ) -> None:
        """Initialize the client.

        Args:
            token: A GitHub token. The GraphQL API refuses anonymous requests,
                so fetching requires one.
            max_retries: Maximum number of retries for failed read requests.
            skip_checks: Do not read CI rollups; report every PR without checks.
            exclude_repositories: "owner/repo" (or bare) names to skip while
                walking repositories.
        """
        self._headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "gh-deps",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._max_retries = max_retries
        self._skip_checks = skip_checks
        self._excluded = frozenset(exclude_repositories)
        self._rate_limit_remaining = 999  # Initial value, will be updated after first request
        self._rate_limit_reset_time = 0

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        retry: bool = True,
    ) -> Any:
        """Perform a request and return parsed JSON.

        Reads retry network errors with exponential backoff and wait out
        rate limiting; mutations (`retry=False`) are sent exactly once.

        Args:
            method: HTTP method.
            url: Absolute endpoint URL.
            json: Optional JSON request body.
            params: Optional query parameters.
            retry: Whether the request may be repeated.

        Returns:
            The JSON-decoded response body.

        Raises:
            GitHubAPIError: If the response indicates an HTTP error.
            httpx.RequestError: On network or timeout errors.
        """
        # Check if we're rate limited and need to wait
        if self._rate_limit_remaining <= 1 and time.time() < self._rate_limit_reset_time:
            sleep_time = self._rate_limit_reset_time - time.time() + 1  # Add 1 second buffer
            logger.warning(f"Rate limited. Sleeping for {sleep_time:.0f} seconds.")
            await asyncio.sleep(sleep_time)

        attempts = self._max_retries + 1 if retry else 1
        for attempt in range(attempts):
            try:
                async with httpx.AsyncClient(timeout=20) as client:
                    r = await client.request(method, url, headers=self._headers, json=json, params=params)
                    self._update_rate_limit_info(r)
                    r.raise_for_status()
                    return r.json()
            except httpx.HTTPStatusError as e:
                status_code = getattr(e.response, "status_code", None)
                if (
                    status_code == FORBIDDEN_STATUS_CODE
                    and self._rate_limit_remaining <= 1
                    and attempt < attempts - 1
                ):
                    # Wait for rate limit reset before retrying
                    if time.time() < self._rate_limit_reset_time:
                        sleep_time = self._rate_limit_reset_time - time.time() + 1
                        logger.warning(f"Hit rate limit. Waiting {sleep_time:.0f} seconds before retry.")
                        await asyncio.sleep(sleep_time)
                    continue
                message = _error_message(e.response)
                logger.error(f"HTTP error {status_code} for {method} {url}: {message}")
                raise GitHubAPIError(f"HTTP {status_code}: {message}", status_code) from e
            except httpx.RequestError as e:
                if attempt < attempts - 1:
                    logger.warning(f"Network error (attempt {attempt + 1}/{attempts}): {e}")
                    await asyncio.sleep(2**attempt)  # Exponential backoff
                    continue
                logger.error(f"Network error after {attempt + 1} attempt(s): {e}")
                raise

        # Only reachable when every attempt hit the rate limit
        raise GitHubAPIError("Max retries exceeded", FORBIDDEN_STATUS_CODE)

    def _update_rate_limit_info(self, response: httpx.Response) -> None:
        """Update rate limit information from response headers.

        Args:
            response: The HTTP response to extract rate limit info from.
        """
        remaining = response.headers.get(RATE_LIMIT_REMAINING_HEADER)
        reset = response.headers.get(RATE_LIMIT_RESET_HEADER)
        try:
            if remaining is not None:
                self._rate_limit_remaining = int(remaining)
            if reset is not None:
                self._rate_limit_reset_time = int(reset)
        except ValueError:
            logger.debug(f"Unparseable rate limit headers: remaining={remaining!r} reset={reset!r}")

    async def _graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = await self._request("POST", GRAPHQL_URL, json={"query": query, "variables": variables or {}})
        errors = payload.get("errors")
        if errors:
            details = "; ".join(str(err.get("message", err)) for err in errors)
            raise GitHubAPIError(f"GraphQL query failed: {details}")
        return payload.get("data") or {}

    async def fetch_pull_requests(self, target: str, is_organization: bool, limit: int) -> list[PullRequest]:
        """Fetch open dependency-bot PRs across an organization's or user's repositories.

        Args:
            target: Organization or user login.
            is_organization: Walk `organization(login:)` instead of `user(login:)`.
            limit: Stop after this many PRs; 0 means unlimited.

        Returns:
            Bot-authored open PRs in repository order (unsorted).

        Raises:
            GitHubAPIError: If GitHub rejects the query or the owner is unknown.
            httpx.RequestError: On network or timeout errors.
        """
        query = ORG_REPOSITORIES_QUERY if is_organization else USER_REPOSITORIES_QUERY
        prs: list[PullRequest] = []
        cursor: str | None = None
        while True:
            data = await self._graphql(query, {"login": target, "cursor": cursor})
            owner = data.get("owner")
            if owner is None:
                kind = "organization" if is_organization else "user"
                raise GitHubAPIError(f"{kind} not found: {target}")
            repositories = owner["repositories"]
            for repo in repositories.get("nodes") or []:
                name = repo["nameWithOwner"]
                if name in self._excluded:
                    logger.debug(f"Skipping excluded repository: {name}")
                    continue
                for node in (repo.get("pullRequests") or {}).get("nodes") or []:
                    pr = pull_request_from_node(name, node, self._skip_checks)
                    if pr is not None:
                        prs.append(pr)
                if limit > 0 and len(prs) >= limit:
                    logger.debug(f"Reached PR limit ({limit}), stopping")
                    return prs[:limit]
            page_info = repositories.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")
        return prs

    async def fetch_pull_request(self, repository: str, number: int) -> PullRequest | None:
        """Fetch the current state of a single pull request.

        Args:
            repository: "owner/repo".
            number: Pull request number.

        Returns:
            The refreshed PR, or None if it is no longer open (merged or
            closed) or no longer bot-authored.
        """
        owner, name = parse_repository(repository)
        data = await self._graphql(PULL_REQUEST_QUERY, {"owner": owner, "name": name, "number": number})
        repo = data.get("repository") or {}
        node = repo.get("pullRequest")
        if node is None or node.get("state", "OPEN") != "OPEN":
            return None
        return pull_request_from_node(repo.get("nameWithOwner", repository), node, self._skip_checks)

    async def merge_pull_request(self, repository: str, number: int) -> MergeResult:
        """Merge a pull request with a merge commit.

        Returns:
            The server's verdict; `merged` is False when GitHub declined.

        Raises:
            GitHubAPIError: If the API responds with an error status.
            httpx.RequestError: On network or timeout errors.
        """
        owner, repo = parse_repository(repository)
        url = f"{GITHUB_API}/repos/{owner}/{repo}/pulls/{number}/merge"
        logger.debug(f"Merging PR {repository}#{number}")
        data = await self._request("PUT", url, json={"merge_method": "merge"}, retry=False)
        return MergeResult(
            merged=bool(data.get("merged", False)),
            message=data.get("message", ""),
            sha=data.get("sha", ""),
        )

    async def create_comment(self, repository: str, number: int, body: str) -> dict[str, Any]:
        """Post a comment on a pull request."""
        owner, repo = parse_repository(repository)
        url = f"{GITHUB_API}/repos/{owner}/{repo}/issues/{number}/comments"
        logger.debug(f"Creating comment on PR {repository}#{number}: {body}")
        return await self._request("POST", url, json={"body": body}, retry=False)

    async def update_pull_request_body(self, repository: str, number: int, body: str) -> dict[str, Any]:
        """Replace the body of a pull request."""
        owner, repo = parse_repository(repository)
        url = f"{GITHUB_API}/repos/{owner}/{repo}/pulls/{number}"
        logger.debug(f"Updating PR body for {repository}#{number}")
        return await self._request("PATCH", url, json={"body": body}, retry=False)

    async def trigger_renovate_rebase(self, repository: str, number: int, current_body: str) -> None:
        """Ask Renovate to rebase by ticking the checkbox in the PR body.

        Raises:
            RebaseCheckboxNotFoundError: If the body has no rebase checkbox.
            GitHubAPIError: If the body update is rejected.
        """
        updated = check_rebase_checkbox(current_body)
        await self.update_pull_request_body(repository, number, updated)

    async def check_rate_limit(self) -> RateLimitInfo:
        data = await self._graphql(RATE_LIMIT_QUERY)
        info = data.get("rateLimit") or {}
        return RateLimitInfo(
            limit=int(info.get("limit", 0)),
            remaining=int(info.get("remaining", 0)),
            reset_at=str(info.get("resetAt", "")),
        )


def _error_message(response: httpx.Response | None) -> str:
    """Best-effort extraction of GitHub's `message` field from an error response."""
    if response is None:
        return "unknown error"
    try:
        data = response.json()
    except ValueError:
        return response.text or "unknown error"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text or "unknown error"
