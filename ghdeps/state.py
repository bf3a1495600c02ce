from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .list_model import ListModel
from .models import PRKey, PullRequest
from .polling import PollController


class Action(str, Enum):
    MERGE = "merge"
    REBASE = "rebase"
    REFRESH = "refresh"


# Key under which an in-flight refresh is tracked in `pending`
REFRESH_TARGET = "*refresh*"


@dataclass(frozen=True)
class Browse:
    pass


@dataclass(frozen=True)
class Search:
    pass


@dataclass(frozen=True)
class Confirm:
    action: Action
    target: PullRequest


Mode = Browse | Search | Confirm


class StatusKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class Status:
    text: str
    kind: StatusKind = StatusKind.NEUTRAL


@dataclass
class ControllerState:
    """Everything the control loop owns; read by the renderer, written only by the controller."""

    model: ListModel
    polls: PollController
    mode: Mode = field(default_factory=Browse)
    status: Status | None = None
    pending: dict[PRKey | str, Action] = field(default_factory=dict)
    # Merged while a refresh was in flight; dropped from its result
    merged_during_refresh: set[PRKey] = field(default_factory=set)
    last_refreshed_at: float | None = None
    done: bool = False

    @property
    def refreshing(self) -> bool:
        return REFRESH_TARGET in self.pending

    def pending_for(self, key: PRKey) -> Action | None:
        return self.pending.get(key)
