"""Canvas widget showing an eye image with the editable overlay."""

import logging
import tkinter as tk
from typing import Callable, Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageTk

from ...utils.geometry import fit_size
from ...utils.image_utils import resize_image
from ..overlay_editor import OverlayEditor
from ..overlay_renderer import render_overlay

logger = logging.getLogger(__name__)


class IrisCanvas(tk.Canvas):
    """Canvas that renders the overlay and feeds pointer events to the editor.

    The image is scaled to fit the canvas and centered. Pointer positions are
    passed to the editor relative to the displayed image together with the
    displayed size, so the editor can map them back to native pixels.
    """

    def __init__(self, master, editor: OverlayEditor, **kwargs):
        """Initialize iris canvas.

        Args:
            master: Parent widget
            editor: Overlay editor receiving pointer events
            **kwargs: Additional canvas configuration
        """
        self.on_change: Optional[Callable[[], None]] = kwargs.pop('on_change', None)

        super().__init__(master, **kwargs)

        self._editor = editor
        self._image: Optional[np.ndarray] = None
        self._photo: Optional[ImageTk.PhotoImage] = None
        self._image_id: Optional[int] = None

        # Displayed image size and placement
        self._view_size: Tuple[int, int] = (0, 0)
        self._offset_x: int = 0
        self._offset_y: int = 0

        self.bind('<Configure>', self._on_resize)
        self.bind('<ButtonPress-1>', self._on_pointer_down)
        self.bind('<B1-Motion>', self._on_pointer_move)
        self.bind('<ButtonRelease-1>', self._on_pointer_up)
        self.bind('<Leave>', self._on_pointer_leave)

    @property
    def view_size(self) -> Tuple[int, int]:
        return self._view_size

    def set_image(self, image: np.ndarray):
        """Set the native BGR image the overlay is drawn on."""
        self._image = image
        h, w = image.shape[:2]
        self._editor.set_image_size(w, h)
        self.redraw()

    def redraw(self):
        """Render the current editor state and show it scaled to fit."""
        if self._image is None:
            return

        canvas_width = self.winfo_width()
        canvas_height = self.winfo_height()
        if canvas_width <= 1 or canvas_height <= 1:
            # Canvas not yet sized, defer display
            self.after(50, self.redraw)
            return

        frame = render_overlay(self._image, self._editor.state)
        h, w = frame.shape[:2]
        new_w, new_h = fit_size((w, h), (canvas_width, canvas_height))
        frame = resize_image(frame, new_w, new_h)

        photo = ImageTk.PhotoImage(image=Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)))

        self._view_size = (new_w, new_h)
        self._offset_x = (canvas_width - new_w) // 2
        self._offset_y = (canvas_height - new_h) // 2

        if self._image_id is None:
            self._image_id = self.create_image(self._offset_x, self._offset_y, anchor=tk.NW, image=photo)
        else:
            self.coords(self._image_id, self._offset_x, self._offset_y)
            self.itemconfig(self._image_id, image=photo)

        # Keep reference to prevent garbage collection
        self._photo = photo

    def clear(self):
        """Remove the image from the canvas."""
        if self._image_id is not None:
            self.delete(self._image_id)
            self._image_id = None
        self._photo = None
        self._image = None
        self._view_size = (0, 0)

    def _relative(self, event) -> Tuple[float, float]:
        return (event.x - self._offset_x, event.y - self._offset_y)

    def _on_pointer_down(self, event):
        x, y = self._relative(event)
        if self._editor.pointer_down(x, y, self._view_size):
            self._changed()

    def _on_pointer_move(self, event):
        x, y = self._relative(event)
        if self._editor.pointer_move(x, y, self._view_size):
            self._changed()

    def _on_pointer_up(self, event):
        if self._editor.pointer_up() is not None:
            self._changed()

    def _on_pointer_leave(self, event):
        if self._editor.pointer_leave() is not None:
            self._changed()

    def _on_resize(self, event):
        self.redraw()

    def _changed(self):
        self.redraw()
        if self.on_change is not None:
            self.on_change()
