from __future__ import annotations

import logging
import time
import webbrowser
from collections.abc import Callable, Iterable
from typing import ClassVar

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.message import Message

from .commands import CommandDispatcher, CompletionEvent, Effect, Quit, RemoteClient
from .config import AppConfig, RunConfig, Viewport
from .controller import Controller
from .event_handler import EventHandler
from .models import PullRequest
from .ui import DEFAULT_THEME, FrameView, Theme, render_frame

logger = logging.getLogger(__name__)

# Seconds between redraws that keep the "refreshed ... ago" footer current
CLOCK_TICK_SECONDS = 1.0


class GhDepsApp(App):
    """Textual application running the interactive triage loop.

    Textual's message queue is the single control loop: key presses and
    completion events from background work are handled one at a time on it,
    and only the controller mutates state.
    """

    CSS = """
    #frame { height: auto; }
    """

    ENABLE_COMMAND_PALETTE = False

    BINDINGS: ClassVar[list[Binding]] = [
        Binding("ctrl+c", "interrupt", "Quit", priority=True, show=False),
    ]

    class Completed(Message):
        """Posted by background work when it finishes."""

        def __init__(self, event: CompletionEvent) -> None:
            self.event = event
            super().__init__()

    def __init__(
        self,
        prs: Iterable[PullRequest],
        client: RemoteClient,
        run_config: RunConfig,
        cfg: AppConfig | None = None,
        frame_theme: Theme = DEFAULT_THEME,
        opener: Callable[[str], bool] = webbrowser.open,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the controller, the dispatcher and the frame widget.

        Args:
            prs: Initially fetched PRs.
            client: Remote client used by background work.
            run_config: Scope and limit used for refreshes.
            cfg: Poll settings and default viewport; defaults to `AppConfig()`.
            frame_theme: Styles for the rendered frame.
            opener: Callable that opens a URL in a browser.
            clock: Monotonic clock for poll schedules.
            wall_clock: Wall clock for the last-refresh footer.
        """
        super().__init__()
        self.cfg = cfg or AppConfig()
        self.run_config = run_config
        self.frame_theme = frame_theme
        self._wall_clock = wall_clock
        self.controller = Controller(prs, self.cfg.poll, clock=clock, wall_clock=wall_clock)
        self.dispatcher = CommandDispatcher(client, run_config, self._post_completion, opener=opener)
        self._frame = FrameView(id="frame")
        self._event_handler = EventHandler(self)

    def compose(self) -> ComposeResult:
        yield self._frame

    def on_mount(self) -> None:
        logger.debug(f"Interactive mode for {self.run_config.scope_label} with {len(self.controller.model.all)} PRs")
        self.set_interval(CLOCK_TICK_SECONDS, self.redraw)
        self.redraw()

    @property
    def viewport(self) -> Viewport:
        """Current terminal size, or the configured default before one is known."""
        width, height = self.size
        if width and height:
            return Viewport(width=width, height=height)
        return self.cfg.viewport

    @property
    def frame_text(self) -> str:
        return self._frame.plain

    def redraw(self) -> None:
        frame = render_frame(self.controller.state, self.viewport, self._wall_clock(), self.frame_theme)
        self._frame.show(frame)

    def dispatch_key(self, key: str) -> None:
        """Hand a normalized key to the controller and run what it asks for."""
        self.apply(self.controller.handle_key(key))
        self.redraw()

    def apply(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, Quit):
                # Abandon in-flight work
                self.dispatcher.abandon()
                self.exit()
                return
            self.dispatcher.execute(effect)

    def _post_completion(self, event: CompletionEvent) -> None:
        self.post_message(GhDepsApp.Completed(event))

    # ---------------- Event handler delegation ----------------

    def on_key(self, event: events.Key) -> None:
        """Key handling: every key goes through the controller."""
        self._event_handler.on_key(event)

    def on_resize(self, event: events.Resize) -> None:
        self.redraw()

    def on_gh_deps_app_completed(self, message: GhDepsApp.Completed) -> None:
        """Reconcile finished background work into state."""
        if self.controller.state.done:
            return
        self.apply(self.controller.handle_event(message.event))
        self.redraw()

    def action_interrupt(self) -> None:
        self.dispatch_key("ctrl+c")
