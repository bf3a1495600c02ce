from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from .commands import (
    BrowserOpened,
    CompletionEvent,
    Effect,
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
)
from .config import PollSettings
from .list_model import ListModel
from .models import MergeableState, PRKey, PullRequest
from .polling import PollController
from .state import REFRESH_TARGET, Action, Browse, Confirm, ControllerState, Search, Status, StatusKind

logger = logging.getLogger(__name__)

INTERRUPT_KEY = "ctrl+c"
UP_KEYS = frozenset({"up", "k"})
DOWN_KEYS = frozenset({"down", "j"})
QUIT_KEYS = frozenset({"q", "escape"})
ACCEPT_KEYS = frozenset({"enter", "y"})
REJECT_KEYS = frozenset({"n", "escape", "q"})


class Controller:
    """Input dispatch and completion reconciliation for the interactive view.

    The controller is the only writer of `state`. Key presses and completion
    events go in; effects describing background work come out. Nothing here
    performs I/O.
    """

    def __init__(
        self,
        prs: Iterable[PullRequest],
        settings: PollSettings,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self._wall_clock = wall_clock
        self.state = ControllerState(model=ListModel(prs), polls=PollController(settings, clock))
        self.state.last_refreshed_at = wall_clock()

    @property
    def model(self) -> ListModel:
        return self.state.model

    # ---------------- Keys ----------------

    def handle_key(self, key: str) -> list[Effect]:
        """Apply one key press.

        Args:
            key: Normalized key name ("up", "enter", "escape", "backspace",
                "ctrl+c") or a single printable character.

        Returns:
            Effects to hand to the dispatcher, in order.
        """
        state = self.state
        if key == INTERRUPT_KEY:
            state.done = True
            return [Quit()]
        mode = state.mode
        # The confirmation modal keeps its status line until it closes
        if state.status is not None and not isinstance(mode, Confirm):
            state.status = None
        if isinstance(mode, Confirm):
            return self._confirm_key(mode, key)
        if isinstance(mode, Search):
            return self._search_key(key)
        return self._browse_key(key)

    def _browse_key(self, key: str) -> list[Effect]:
        if key in UP_KEYS:
            self.model.move(-1)
        elif key in DOWN_KEYS:
            self.model.move(1)
        elif key == "/":
            self.state.mode = Search()
        elif key in ACCEPT_KEYS:
            self._open_confirmation()
        elif key == "o":
            pr = self.model.selected()
            if pr is not None:
                return [OpenInBrowser(pr)]
        elif key == "r":
            return self._request_refresh()
        elif key in QUIT_KEYS:
            self.state.done = True
            return [Quit()]
        return []

    def _search_key(self, key: str) -> list[Effect]:
        model = self.model
        if key == "escape":
            model.set_query("")
            self.state.mode = Browse()
        elif key == "enter":
            self.state.mode = Browse()
        elif key == "backspace":
            if model.query:
                model.set_query(model.query[:-1])
        elif len(key) == 1 and key.isprintable():
            model.set_query(model.query + key)
        return []

    def _confirm_key(self, mode: Confirm, key: str) -> list[Effect]:
        if key in ACCEPT_KEYS:
            self.state.mode = Browse()
            return self._execute(mode.action, mode.target)
        if key in REJECT_KEYS:
            self.state.mode = Browse()
        return []

    def _open_confirmation(self) -> None:
        pr = self.model.selected()
        if pr is None:
            return
        busy = self.state.pending_for(pr.key)
        if busy is not None:
            self.state.status = Status(f"PR #{pr.number} already has a {busy.value} in progress")
            return
        if pr.mergeable_state is MergeableState.CONFLICTING and pr.bot_type.supports_rebase:
            action = Action.REBASE
        else:
            action = Action.MERGE
        self.state.mode = Confirm(action, pr)

    def _execute(self, action: Action, target: PullRequest) -> list[Effect]:
        state = self.state
        # Polls and refreshes may have replaced the row while the modal was open
        pr = self.model.get(target.key)
        if pr is None:
            state.status = Status(f"PR #{target.number} is no longer in the list", StatusKind.ERROR)
            return []
        busy = state.pending_for(pr.key)
        if busy is not None:
            state.status = Status(f"PR #{pr.number} already has a {busy.value} in progress")
            return []
        if action is Action.MERGE:
            if pr.mergeable_state is MergeableState.CONFLICTING:
                state.status = Status(f"PR #{pr.number} has conflicts and cannot be merged", StatusKind.ERROR)
                return []
            state.pending[pr.key] = Action.MERGE
            state.status = Status(f"Merging PR #{pr.number}...")
            return [StartMerge(pr)]
        if not pr.bot_type.supports_rebase:
            state.status = Status(f"Bot {pr.bot_type.display_name} does not support rebase", StatusKind.ERROR)
            return []
        state.pending[pr.key] = Action.REBASE
        state.status = Status(f"Triggering rebase for PR #{pr.number}...")
        return [StartRebase(pr)]

    def _request_refresh(self) -> list[Effect]:
        if self.state.refreshing:
            return []
        self.state.status = Status("Refreshing PRs...")
        return self._arm_refresh(0.0)

    def _arm_refresh(self, delay: float) -> list[Effect]:
        if self.state.refreshing:
            return []
        self.state.pending[REFRESH_TARGET] = Action.REFRESH
        return [StartRefresh(delay)]

    # ---------------- Completions ----------------

    def handle_event(self, event: CompletionEvent) -> list[Effect]:
        """Reconcile the result of background work into state.

        Results are validated against current state first: a result for a PR
        that is no longer listed only updates the status line.
        """
        if isinstance(event, MergeCompleted):
            return self._merge_completed(event)
        if isinstance(event, RebaseCompleted):
            return self._rebase_completed(event)
        if isinstance(event, RefreshCompleted):
            return self._refresh_completed(event)
        if isinstance(event, PollCompleted):
            return self._poll_completed(event)
        if isinstance(event, BrowserOpened):
            self.state.status = Status(event.message, StatusKind.SUCCESS if event.ok else StatusKind.ERROR)
            return []
        raise TypeError(f"unexpected completion event {event!r}")

    def _merge_completed(self, event: MergeCompleted) -> list[Effect]:
        state = self.state
        state.pending.pop(event.key, None)
        if not event.merged:
            state.status = Status(event.message, StatusKind.ERROR)
            return []
        state.status = Status(event.message, StatusKind.SUCCESS)
        state.polls.cancel(event.key)
        self.model.remove(event.key)
        if state.refreshing:
            # The running refresh was fetched before this merge
            state.merged_during_refresh.add(event.key)
            return []
        # Sibling PRs may change mergeability after a merge
        return self._arm_refresh(self.settings.merge_refresh_delay)

    def _rebase_completed(self, event: RebaseCompleted) -> list[Effect]:
        state = self.state
        state.pending.pop(event.key, None)
        if not event.ok:
            state.status = Status(event.message, StatusKind.ERROR)
            return []
        state.status = Status(event.message, StatusKind.SUCCESS)
        if event.key not in self.model:
            return []
        schedule = state.polls.arm(event.key, self.settings.rebase_initial_delay)
        logger.debug(f"Polling {event.key} in {schedule.delay:.0f}s (attempt {schedule.attempt})")
        return [StartPoll(event.key, schedule.delay, schedule.token)]

    def _refresh_completed(self, event: RefreshCompleted) -> list[Effect]:
        state = self.state
        state.pending.pop(REFRESH_TARGET, None)
        merged = state.merged_during_refresh
        state.merged_during_refresh = set()
        if event.prs is None:
            # Keep the previous lists untouched
            state.status = Status(f"Failed to refresh PRs: {event.error}", StatusKind.ERROR)
        else:
            self.model.set_all([pr for pr in event.prs if pr.key not in merged])
            state.last_refreshed_at = self._wall_clock()
            state.status = Status(f"Refreshed: {len(self.model.all)} PRs loaded", StatusKind.SUCCESS)
        if merged:
            return self._arm_refresh(self.settings.merge_refresh_delay)
        return []

    def _poll_completed(self, event: PollCompleted) -> list[Effect]:
        state = self.state
        key = event.key
        if not state.polls.is_current(key, event.token):
            return []
        if key not in self.model:
            state.polls.cancel(key)
            return []
        if event.error is not None:
            return self._next_poll(key, None)
        if event.closed or event.pr is None:
            state.polls.cancel(key)
            self.model.remove(key)
            state.status = Status(f"PR #{key[1]} in {key[0]} is no longer open")
            return []
        if event.pr.is_settled:
            state.polls.cancel(key)
            self.model.replace(event.pr)
            logger.debug(f"Poll of {key} settled: CI {event.pr.ci_status.value}, {event.pr.mergeable_state.value}")
            return []
        return self._next_poll(key, event.pr)

    def _next_poll(self, key: PRKey, observed: PullRequest | None) -> list[Effect]:
        schedule = self.state.polls.advance(key, observed)
        if schedule is None:
            logger.debug(f"Poll of {key} exhausted after {self.settings.max_attempts} attempts")
            return []
        return [StartPoll(key, schedule.delay, schedule.token)]
