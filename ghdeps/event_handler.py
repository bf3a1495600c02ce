from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

from textual import events

if TYPE_CHECKING:
    from .tui import GhDepsApp

# Textual key names passed to the controller unchanged
NAMED_KEYS = frozenset({"up", "down", "enter", "escape", "backspace", "ctrl+c"})


def normalize_key(event: events.Key) -> str | None:
    """Translate a Textual key event into the controller's key vocabulary.

    Printable keys become the character itself (Textual reports "/" as
    "slash", for instance); every other key keeps its Textual name so the
    controller still sees the press.

    Args:
        event: Key event from Textual.

    Returns:
        The key name, or None for events that carry no key.
    """
    key = getattr(event, "key", None)
    if key is None:
        return None
    if key in NAMED_KEYS:
        return key
    character = getattr(event, "character", None)
    if character and getattr(event, "is_printable", False):
        return character
    return key


class EventHandler:
    """Routes terminal events for the GhDepsApp."""

    def __init__(self, app: GhDepsApp) -> None:
        """Initialize with reference to the main app."""
        self.app = app

    def on_key(self, event: events.Key) -> None:
        """Feed every key to the controller and keep Textual from acting on it."""
        key = normalize_key(event)
        if key is None:
            return
        with contextlib.suppress(Exception):
            event.prevent_default()
        event.stop()
        self.app.dispatch_key(key)
