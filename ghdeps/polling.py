"""Post-action status polling.

After a rebase GitHub recomputes CI and mergeability for a while. A poll
re-samples one PR on a doubling schedule until both settle or the attempt
budget runs out; running out is not an error, the last known data stays.

States per PR: idle (no entry) -> scheduled(attempt, due_at) -> idle.
"""

from __future__ import annotations

import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass, replace

from .config import PollSettings
from .models import PRKey, PullRequest


@dataclass(frozen=True)
class PollSchedule:
    attempt: int
    base_delay: float
    delay: float
    due_at: float
    token: int
    last_observed: PullRequest | None = None


def backoff_delay(base_delay: float, attempt: int, max_delay: float) -> float:
    """Delay before `attempt` (1-based): base, 2*base, 4*base, ... capped at `max_delay`."""
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


class PollController:
    """Poll schedules keyed by PR identity.

    Every schedule carries a token; a sample produced for an older token (the
    poll was re-armed or cancelled since) is ignored by `is_current`.
    """

    def __init__(self, settings: PollSettings, clock: Callable[[], float] = time.monotonic) -> None:
        self.settings = settings
        self.targets: dict[PRKey, PollSchedule] = {}
        self._clock = clock
        self._tokens = itertools.count(1)

    def __len__(self) -> int:
        return len(self.targets)

    def __contains__(self, key: object) -> bool:
        return key in self.targets

    def arm(self, key: PRKey, base_delay: float) -> PollSchedule:
        """Start (or restart) polling `key`, first sample after `base_delay` seconds."""
        delay = backoff_delay(base_delay, 1, self.settings.max_delay)
        schedule = PollSchedule(
            attempt=1,
            base_delay=base_delay,
            delay=delay,
            due_at=self._clock() + delay,
            token=next(self._tokens),
        )
        self.targets[key] = schedule
        return schedule

    def get(self, key: PRKey) -> PollSchedule | None:
        return self.targets.get(key)

    def is_current(self, key: PRKey, token: int) -> bool:
        schedule = self.targets.get(key)
        return schedule is not None and schedule.token == token

    def cancel(self, key: PRKey) -> None:
        self.targets.pop(key, None)

    def advance(self, key: PRKey, observed: PullRequest | None = None) -> PollSchedule | None:
        """Record a non-terminal sample and schedule the next one.

        Args:
            key: PR being polled.
            observed: The sample, when the fetch succeeded.

        Returns:
            The next schedule, or None when `max_attempts` samples have been
            taken and the poll has gone idle.
        """
        schedule = self.targets.get(key)
        if schedule is None:
            return None
        if schedule.attempt >= self.settings.max_attempts:
            del self.targets[key]
            return None
        attempt = schedule.attempt + 1
        delay = backoff_delay(schedule.base_delay, attempt, self.settings.max_delay)
        nxt = replace(
            schedule,
            attempt=attempt,
            delay=delay,
            due_at=self._clock() + delay,
            token=next(self._tokens),
            last_observed=observed if observed is not None else schedule.last_observed,
        )
        self.targets[key] = nxt
        return nxt
