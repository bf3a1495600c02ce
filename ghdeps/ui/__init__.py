from .frame import render_frame, render_modal
from .frame_view import FrameView
from .theme import DEFAULT_THEME, Theme

__all__ = ["DEFAULT_THEME", "FrameView", "Theme", "render_frame", "render_modal"]
