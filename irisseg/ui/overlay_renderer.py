"""Pure rendering of the overlay circles onto an image."""

from typing import Optional, Tuple

import cv2
import numpy as np

from ..core.entities import Circle, OverlayState
from ..utils.geometry import round_half_up


# BGR, matching OpenCV images
PUPIL_COLOR = (0, 255, 0)
IRIS_COLOR = (0, 0, 255)
CROSSHAIR_COLOR = (255, 255, 255)

SELECTED_THICKNESS = 3
UNSELECTED_THICKNESS = 2
UNSELECTED_OPACITY = 0.6
CROSSHAIR_HALF_LENGTH = 10

_DRAW_ORDER: Tuple[Tuple[Circle, Tuple[int, int, int]], ...] = (
    (Circle.PUPIL, PUPIL_COLOR),
    (Circle.IRIS, IRIS_COLOR),
)


def render_overlay(image: np.ndarray, state: Optional[OverlayState]) -> np.ndarray:
    """Draw the overlay for ``state`` on a copy of ``image``.

    The pupil is drawn first and the iris on top. The selected circle is
    drawn thicker and fully opaque, the other one thinner and blended. A
    crosshair marks the selected circle's center. The input image is never
    modified, so rendering the same state twice gives identical pixels.

    Args:
        image: BGR image as numpy array, in native pixels
        state: Overlay state to draw, or None for the bare image

    Returns:
        New BGR image with the overlay drawn
    """
    canvas = image.copy()
    if state is None:
        return canvas
    if canvas.ndim == 2:
        canvas = cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)

    geometry = state.geometry
    for which, color in _DRAW_ORDER:
        cx, cy, r = geometry.circle(which)
        center = (round_half_up(cx), round_half_up(cy))
        radius = max(0, round_half_up(r))

        if which is state.selected_circle:
            cv2.circle(canvas, center, radius, color, SELECTED_THICKNESS)
            continue

        layer = canvas.copy()
        cv2.circle(layer, center, radius, color, UNSELECTED_THICKNESS)
        cv2.addWeighted(layer, UNSELECTED_OPACITY, canvas, 1 - UNSELECTED_OPACITY, 0, canvas)

    if state.selected_circle is not None:
        cx, cy, _ = geometry.circle(state.selected_circle)
        _draw_crosshair(canvas, (round_half_up(cx), round_half_up(cy)))

    return canvas


def _draw_crosshair(canvas: np.ndarray, center: Tuple[int, int]) -> None:
    x, y = center
    d = CROSSHAIR_HALF_LENGTH
    cv2.line(canvas, (x - d, y), (x + d, y), CROSSHAIR_COLOR, 1)
    cv2.line(canvas, (x, y - d), (x, y + d), CROSSHAIR_COLOR, 1)
