from __future__ import annotations

from types import SimpleNamespace

import pytest

from ghdeps.event_handler import EventHandler, normalize_key


class FakeEvent:
    def __init__(self, key: str | None, character: str | None = None, is_printable: bool = False) -> None:
        self.key = key
        self.character = character
        self.is_printable = is_printable
        self._stopped = False
        self._prevented = False

    def prevent_default(self):
        self._prevented = True

    def stop(self):
        self._stopped = True


@pytest.mark.parametrize(
    "event, expected",
    [
        (FakeEvent("up"), "up"),
        (FakeEvent("down"), "down"),
        (FakeEvent("enter", "\r"), "enter"),
        (FakeEvent("escape", "\x1b"), "escape"),
        (FakeEvent("backspace", "\x08"), "backspace"),
        (FakeEvent("ctrl+c", "\x03"), "ctrl+c"),
        (FakeEvent("slash", "/", True), "/"),
        (FakeEvent("j", "j", True), "j"),
        (FakeEvent("space", " ", True), " "),
        (FakeEvent("Y", "Y", True), "Y"),
        (FakeEvent("f1"), "f1"),
        (FakeEvent("tab", "\t"), "tab"),
        (FakeEvent("pageup"), "pageup"),
        (FakeEvent(None), None),
    ],
)
def test_normalize_key(event: FakeEvent, expected: str | None) -> None:
    assert normalize_key(event) == expected


def _app():
    app = SimpleNamespace(keys=[])
    app.dispatch_key = app.keys.append
    return app


def test_on_key_forwards_and_stops_event() -> None:
    app = _app()
    handler = EventHandler(app)
    event = FakeEvent("slash", "/", True)

    handler.on_key(event)

    assert app.keys == ["/"]
    assert event._stopped and event._prevented


def test_keys_without_a_binding_still_reach_the_app() -> None:
    app = _app()
    handler = EventHandler(app)
    event = FakeEvent("f5")

    handler.on_key(event)

    assert app.keys == ["f5"]
    assert event._stopped
