from __future__ import annotations

from dataclasses import dataclass, field

from rich.style import Style


@dataclass(frozen=True)
class Theme:
    """Styles used when drawing a frame. Passed to the renderer explicitly."""

    header: Style = field(default_factory=lambda: Style.parse("bold color(99) on color(235)"))
    selected: Style = field(default_factory=lambda: Style.parse("bold color(212)"))
    normal: Style = field(default_factory=Style.null)
    dim: Style = field(default_factory=lambda: Style.parse("color(241)"))
    error: Style = field(default_factory=lambda: Style.parse("bold color(196)"))
    success: Style = field(default_factory=lambda: Style.parse("bold color(42)"))


DEFAULT_THEME = Theme()
