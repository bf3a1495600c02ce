"""Background work launched by the controller.

The controller asks for work by returning effects. `CommandDispatcher` runs
each one as its own asyncio task; the task never touches controller state and
reports back through exactly one completion event handed to `post`.
"""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Protocol

from .config import RunConfig
from .github import MergeResult, RebaseCheckboxNotFoundError
from .models import MergeableState, PRKey, PullRequest

logger = logging.getLogger(__name__)


class RemoteClient(Protocol):
    async def fetch_pull_requests(self, target: str, is_organization: bool, limit: int) -> list[PullRequest]: ...

    async def fetch_pull_request(self, repository: str, number: int) -> PullRequest | None: ...

    async def merge_pull_request(self, repository: str, number: int) -> MergeResult: ...

    async def create_comment(self, repository: str, number: int, body: str) -> Any: ...

    async def trigger_renovate_rebase(self, repository: str, number: int, current_body: str) -> None: ...


# ---------------- Effects (controller -> dispatcher) ----------------


@dataclass(frozen=True)
class StartMerge:
    pr: PullRequest


@dataclass(frozen=True)
class StartRebase:
    pr: PullRequest


@dataclass(frozen=True)
class StartRefresh:
    delay: float = 0.0


@dataclass(frozen=True)
class StartPoll:
    key: PRKey
    delay: float
    token: int


@dataclass(frozen=True)
class OpenInBrowser:
    pr: PullRequest


@dataclass(frozen=True)
class Quit:
    pass


Effect = StartMerge | StartRebase | StartRefresh | StartPoll | OpenInBrowser | Quit


# ---------------- Completion events (dispatcher -> controller) ----------------


@dataclass(frozen=True)
class MergeCompleted:
    key: PRKey
    merged: bool
    message: str


@dataclass(frozen=True)
class RebaseCompleted:
    key: PRKey
    ok: bool
    message: str


@dataclass(frozen=True)
class RefreshCompleted:
    prs: list[PullRequest] | None
    error: str | None = None


@dataclass(frozen=True)
class PollCompleted:
    key: PRKey
    token: int
    pr: PullRequest | None = None
    closed: bool = False
    error: str | None = None


@dataclass(frozen=True)
class BrowserOpened:
    key: PRKey
    ok: bool
    message: str


CompletionEvent = MergeCompleted | RebaseCompleted | RefreshCompleted | PollCompleted | BrowserOpened


# ---------------- Runners ----------------


async def run_merge(client: RemoteClient, pr: PullRequest) -> MergeCompleted:
    """Merge `pr`, refusing locally when GitHub already reports conflicts."""
    if pr.mergeable_state is MergeableState.CONFLICTING:
        return MergeCompleted(pr.key, False, f"PR #{pr.number} has conflicts and cannot be merged")
    try:
        result = await client.merge_pull_request(pr.repository, pr.number)
    except ValueError as e:
        return MergeCompleted(pr.key, False, f"Invalid repository format: {e}")
    except Exception as e:
        logger.error(f"Merge of {pr.repository}#{pr.number} failed: {e}")
        return MergeCompleted(pr.key, False, f"Merge failed: {e}")
    if not result.merged:
        return MergeCompleted(pr.key, False, f"Merge unsuccessful: {result.message}")
    logger.debug(f"Merged {pr.repository}#{pr.number} as {result.sha}")
    return MergeCompleted(pr.key, True, f"Successfully merged PR #{pr.number} in {pr.repository}")


async def run_rebase(client: RemoteClient, pr: PullRequest) -> RebaseCompleted:
    """Ask the authoring bot to rebase `pr` using the mechanism it understands."""
    bot = pr.bot_type
    if bot.uses_checkbox_rebase:
        try:
            await client.trigger_renovate_rebase(pr.repository, pr.number, pr.body)
        except RebaseCheckboxNotFoundError as e:
            return RebaseCompleted(pr.key, False, f"Failed to trigger rebase: {e}")
        except Exception as e:
            logger.error(f"Rebase of {pr.repository}#{pr.number} failed: {e}")
            return RebaseCompleted(pr.key, False, f"Failed to trigger rebase: {e}")
        return RebaseCompleted(
            pr.key, True, f"Rebase triggered for PR #{pr.number} in {pr.repository} (checkbox checked)"
        )
    if bot.rebase_command:
        try:
            await client.create_comment(pr.repository, pr.number, bot.rebase_command)
        except Exception as e:
            logger.error(f"Rebase comment on {pr.repository}#{pr.number} failed: {e}")
            return RebaseCompleted(pr.key, False, f"Failed to post rebase comment: {e}")
        return RebaseCompleted(
            pr.key, True, f"Rebase triggered for PR #{pr.number} in {pr.repository} (comment posted)"
        )
    return RebaseCompleted(pr.key, False, f"Bot {bot.display_name} does not support rebase")


async def run_refresh(client: RemoteClient, run_config: RunConfig, delay: float = 0.0) -> RefreshCompleted:
    """Re-run the full fetch for the configured scope."""
    if delay > 0:
        await asyncio.sleep(delay)
    try:
        prs = await client.fetch_pull_requests(run_config.target, run_config.is_organization, run_config.limit)
    except Exception as e:
        logger.error(f"Refresh of {run_config.scope_label} failed: {e}")
        return RefreshCompleted(None, str(e))
    return RefreshCompleted(prs)


async def run_poll(client: RemoteClient, key: PRKey, delay: float, token: int) -> PollCompleted:
    """Sleep until the poll is due, then sample the PR once."""
    await asyncio.sleep(delay)
    repository, number = key
    try:
        pr = await client.fetch_pull_request(repository, number)
    except Exception as e:
        logger.warning(f"Poll of {repository}#{number} failed: {e}")
        return PollCompleted(key, token, error=str(e))
    return PollCompleted(key, token, pr=pr, closed=pr is None)


async def run_open(pr: PullRequest, opener: Callable[[str], bool]) -> BrowserOpened:
    try:
        opened = await asyncio.to_thread(opener, pr.url)
    except webbrowser.Error as e:
        return BrowserOpened(pr.key, False, f"Failed to open browser: {e}")
    if not opened:
        return BrowserOpened(pr.key, False, "Failed to open browser: no runnable browser found")
    return BrowserOpened(pr.key, True, f"Opened PR #{pr.number} in browser")


class CommandDispatcher:
    """Runs effects as fire-and-forget asyncio tasks.

    Each task posts exactly one completion event through `post`. Tasks are
    tracked only so they can be abandoned on exit.
    """

    def __init__(
        self,
        client: RemoteClient,
        run_config: RunConfig,
        post: Callable[[CompletionEvent], None],
        opener: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        self._client = client
        self._run_config = run_config
        self._post = post
        self._opener = opener
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def execute(self, effect: Effect) -> None:
        """Launch the background work for `effect`.

        Raises:
            TypeError: For effects the dispatcher does not run (e.g. `Quit`).
        """
        if isinstance(effect, StartMerge):
            self._spawn(run_merge(self._client, effect.pr))
        elif isinstance(effect, StartRebase):
            self._spawn(run_rebase(self._client, effect.pr))
        elif isinstance(effect, StartRefresh):
            self._spawn(run_refresh(self._client, self._run_config, effect.delay))
        elif isinstance(effect, StartPoll):
            self._spawn(run_poll(self._client, effect.key, effect.delay, effect.token))
        elif isinstance(effect, OpenInBrowser):
            self._spawn(run_open(effect.pr, self._opener))
        else:
            raise TypeError(f"dispatcher cannot run {effect!r}")

    def abandon(self) -> None:
        """Cancel everything still in flight without waiting for it."""
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _spawn(self, work: Coroutine[Any, Any, CompletionEvent]) -> None:
        task = asyncio.create_task(self._deliver(work))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, work: Coroutine[Any, Any, CompletionEvent]) -> None:
        event = await work
        self._post(event)
