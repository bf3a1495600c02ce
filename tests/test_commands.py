from __future__ import annotations

import asyncio
import webbrowser
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from ghdeps.commands import (
    BrowserOpened,
    CommandDispatcher,
    MergeCompleted,
    OpenInBrowser,
    PollCompleted,
    Quit,
    RebaseCompleted,
    RefreshCompleted,
    StartMerge,
    StartPoll,
    StartRebase,
    StartRefresh,
    run_merge,
    run_open,
    run_poll,
    run_rebase,
    run_refresh,
)
from ghdeps.config import RunConfig
from ghdeps.github import GitHubAPIError, MergeResult, RebaseCheckboxNotFoundError
from ghdeps.models import BotType, MergeableState

RUN_CONFIG = RunConfig(target="acme", is_organization=True, limit=10)


def fake_client() -> Mock:
    client = Mock()
    client.fetch_pull_requests = AsyncMock(return_value=[])
    client.fetch_pull_request = AsyncMock(return_value=None)
    client.merge_pull_request = AsyncMock(return_value=MergeResult(merged=True, message="ok", sha="abc"))
    client.create_comment = AsyncMock(return_value={})
    client.trigger_renovate_rebase = AsyncMock(return_value=None)
    return client


# ---------------- Merge ----------------


@pytest.mark.asyncio
async def test_merge_conflicting_never_calls_remote(make_pr) -> None:
    client = fake_client()
    pr = make_pr("acme/api", 1, mergeable=MergeableState.CONFLICTING)

    event = await run_merge(client, pr)

    assert event == MergeCompleted(pr.key, False, "PR #1 has conflicts and cannot be merged")
    client.merge_pull_request.assert_not_awaited()


@pytest.mark.asyncio
async def test_merge_success(make_pr) -> None:
    client = fake_client()
    pr = make_pr("acme/api", 1)

    event = await run_merge(client, pr)

    assert event == MergeCompleted(pr.key, True, "Successfully merged PR #1 in acme/api")
    client.merge_pull_request.assert_awaited_once_with("acme/api", 1)


@pytest.mark.asyncio
async def test_merge_declined_by_server(make_pr) -> None:
    client = fake_client()
    client.merge_pull_request.return_value = MergeResult(merged=False, message="Head branch was modified")

    event = await run_merge(client, make_pr("acme/api", 1))

    assert event.merged is False
    assert event.message == "Merge unsuccessful: Head branch was modified"


@pytest.mark.asyncio
async def test_merge_api_error(make_pr) -> None:
    client = fake_client()
    client.merge_pull_request.side_effect = GitHubAPIError("HTTP 405: Pull Request is not mergeable", 405)

    event = await run_merge(client, make_pr("acme/api", 1))

    assert event.merged is False
    assert event.message == "Merge failed: HTTP 405: Pull Request is not mergeable"


@pytest.mark.asyncio
async def test_merge_invalid_repository(make_pr) -> None:
    client = fake_client()
    client.merge_pull_request.side_effect = ValueError("invalid repository format: api (expected owner/repo)")

    event = await run_merge(client, make_pr("api", 1))

    assert event.message.startswith("Invalid repository format:")


# ---------------- Rebase ----------------


@pytest.mark.asyncio
async def test_rebase_renovate_ticks_checkbox(make_pr) -> None:
    client = fake_client()
    pr = make_pr("acme/api", 4, bot_type=BotType.RENOVATE, body=" - [ ] rebase")

    event = await run_rebase(client, pr)

    assert event == RebaseCompleted(pr.key, True, "Rebase triggered for PR #4 in acme/api (checkbox checked)")
    client.trigger_renovate_rebase.assert_awaited_once_with("acme/api", 4, " - [ ] rebase")
    client.create_comment.assert_not_awaited()


@pytest.mark.asyncio
async def test_rebase_renovate_without_checkbox(make_pr) -> None:
    client = fake_client()
    client.trigger_renovate_rebase.side_effect = RebaseCheckboxNotFoundError("rebase checkbox not found in PR body")

    event = await run_rebase(client, make_pr("acme/api", 4, bot_type=BotType.RENOVATE))

    assert event.ok is False
    assert event.message == "Failed to trigger rebase: rebase checkbox not found in PR body"


@pytest.mark.asyncio
async def test_rebase_dependabot_posts_comment(make_pr) -> None:
    client = fake_client()
    pr = make_pr("acme/web", 2, bot_type=BotType.DEPENDABOT)

    event = await run_rebase(client, pr)

    assert event == RebaseCompleted(pr.key, True, "Rebase triggered for PR #2 in acme/web (comment posted)")
    client.create_comment.assert_awaited_once_with("acme/web", 2, "@dependabot rebase")


@pytest.mark.asyncio
async def test_rebase_comment_failure(make_pr) -> None:
    client = fake_client()
    client.create_comment.side_effect = httpx.ConnectError("offline")

    event = await run_rebase(client, make_pr("acme/web", 2, bot_type=BotType.DEPENDABOT))

    assert event.ok is False
    assert event.message == "Failed to post rebase comment: offline"


@pytest.mark.asyncio
async def test_rebase_unsupported_bot(make_pr) -> None:
    client = fake_client()

    event = await run_rebase(client, make_pr("acme/ci", 3, bot_type=BotType.GITHUB_ACTIONS))

    assert event.ok is False
    assert "does not support rebase" in event.message
    client.create_comment.assert_not_awaited()
    client.trigger_renovate_rebase.assert_not_awaited()


# ---------------- Refresh / poll / open ----------------


@pytest.mark.asyncio
async def test_refresh_uses_run_config(make_pr) -> None:
    client = fake_client()
    prs = [make_pr("acme/api", 1)]
    client.fetch_pull_requests.return_value = prs

    event = await run_refresh(client, RUN_CONFIG)

    assert event == RefreshCompleted(prs)
    client.fetch_pull_requests.assert_awaited_once_with("acme", True, 10)


@pytest.mark.asyncio
async def test_refresh_failure_becomes_event() -> None:
    client = fake_client()
    client.fetch_pull_requests.side_effect = GitHubAPIError("GraphQL query failed: timeout")

    event = await run_refresh(client, RUN_CONFIG)

    assert event == RefreshCompleted(None, "GraphQL query failed: timeout")


@pytest.mark.asyncio
async def test_poll_sample(make_pr) -> None:
    client = fake_client()
    pr = make_pr("acme/api", 1)
    client.fetch_pull_request.return_value = pr

    assert await run_poll(client, pr.key, 0, 7) == PollCompleted(pr.key, 7, pr=pr)
    client.fetch_pull_request.assert_awaited_once_with("acme/api", 1)


@pytest.mark.asyncio
async def test_poll_closed_and_error() -> None:
    client = fake_client()
    key = ("acme/api", 1)

    assert await run_poll(client, key, 0, 1) == PollCompleted(key, 1, closed=True)

    client.fetch_pull_request.side_effect = httpx.ReadTimeout("slow")
    assert await run_poll(client, key, 0, 2) == PollCompleted(key, 2, error="slow")


@pytest.mark.asyncio
async def test_open_in_browser(make_pr) -> None:
    pr = make_pr("acme/api", 1)
    opener = Mock(return_value=True)

    assert await run_open(pr, opener) == BrowserOpened(pr.key, True, "Opened PR #1 in browser")
    opener.assert_called_once_with("https://github.com/acme/api/pull/1")

    opener.return_value = False
    assert (await run_open(pr, opener)).ok is False

    opener.side_effect = webbrowser.Error("could not locate runnable browser")
    event = await run_open(pr, opener)
    assert event == BrowserOpened(pr.key, False, "Failed to open browser: could not locate runnable browser")


# ---------------- Dispatcher ----------------


class Collector:
    def __init__(self) -> None:
        self.events: list = []
        self.arrived = asyncio.Event()

    def __call__(self, event) -> None:
        self.events.append(event)
        self.arrived.set()

    async def wait(self, count: int) -> None:
        while len(self.events) < count:
            self.arrived.clear()
            await asyncio.wait_for(self.arrived.wait(), timeout=2)


@pytest.mark.asyncio
async def test_dispatcher_posts_one_event_per_effect(make_pr) -> None:
    client = fake_client()
    post = Collector()
    dispatcher = CommandDispatcher(client, RUN_CONFIG, post, opener=Mock(return_value=True))
    merge_pr = make_pr("acme/api", 1)
    rebase_pr = make_pr("acme/web", 2, bot_type=BotType.DEPENDABOT)

    dispatcher.execute(StartMerge(merge_pr))
    dispatcher.execute(StartRebase(rebase_pr))
    dispatcher.execute(StartRefresh())
    dispatcher.execute(StartPoll(("acme/api", 3), 0, 5))
    dispatcher.execute(OpenInBrowser(merge_pr))
    await post.wait(5)

    kinds = sorted(type(event).__name__ for event in post.events)
    assert kinds == ["BrowserOpened", "MergeCompleted", "PollCompleted", "RebaseCompleted", "RefreshCompleted"]
    for _ in range(3):
        await asyncio.sleep(0)
    assert dispatcher.in_flight == 0


def test_dispatcher_rejects_quit() -> None:
    dispatcher = CommandDispatcher(fake_client(), RUN_CONFIG, Collector())
    with pytest.raises(TypeError):
        dispatcher.execute(Quit())


@pytest.mark.asyncio
async def test_abandon_cancels_in_flight_work() -> None:
    client = fake_client()
    post = Collector()
    dispatcher = CommandDispatcher(client, RUN_CONFIG, post)

    dispatcher.execute(StartPoll(("acme/api", 1), 60, 1))
    dispatcher.execute(StartRefresh(60))
    assert dispatcher.in_flight == 2

    dispatcher.abandon()
    await asyncio.sleep(0)

    assert dispatcher.in_flight == 0
    assert post.events == []
    client.fetch_pull_request.assert_not_awaited()
