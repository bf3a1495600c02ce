from __future__ import annotations

from rich.text import Text
from textual.widgets import Static


class FrameView(Static):
    """Widget that shows the most recently rendered frame."""

    def __init__(self, *, id: str | None = None) -> None:
        super().__init__("", id=id)
        self.frame = Text()

    def show(self, frame: Text) -> None:
        self.frame = frame
        self.update(frame)

    @property
    def plain(self) -> str:
        """Frame contents without styling."""
        return self.frame.plain
