"""User interface package."""

from .overlay_editor import OverlayEditor, OverlayObserver
from .overlay_renderer import render_overlay

__all__ = ["OverlayEditor", "OverlayObserver", "render_overlay"]
