"""Circle geometry and coordinate utilities."""

import math
from typing import Tuple


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from negative infinity.

    Python's ``round`` uses banker's rounding, which would make a drag of
    +0.5 and +1.5 pixels land on the same coordinate.
    """
    return int(math.floor(value + 0.5))


def distance(ax: float, ay: float, bx: float, by: float) -> float:
    """Euclidean distance between two points."""
    return math.hypot(ax - bx, ay - by)


def is_near_circumference(px: float, py: float, cx: float, cy: float,
                          radius: float, tolerance: float) -> bool:
    """True if the point lies within ``tolerance`` of the circle's outline."""
    return abs(distance(px, py, cx, cy) - radius) < tolerance


def clamp_iris_radius(proposed: float, pupil_radius: float, margin: float) -> float:
    """Iris may never shrink closer than ``margin`` to the pupil."""
    return max(proposed, pupil_radius + margin)


def clamp_pupil_radius(proposed: float, iris_radius: float, margin: float) -> float:
    """Pupil may never grow closer than ``margin`` to the iris."""
    return min(proposed, iris_radius - margin)


def view_to_image(x: float, y: float, view_size: Tuple[float, float],
                  image_size: Tuple[float, float]) -> Tuple[float, float]:
    """Convert a point on the rendered surface to native image pixels.

    Args:
        x: X coordinate relative to the rendered image's top-left corner
        y: Y coordinate relative to the rendered image's top-left corner
        view_size: (width, height) the image is displayed at
        image_size: (width, height) of the image in native pixels

    Returns:
        Tuple of (image_x, image_y) as floats
    """
    view_w, view_h = view_size
    image_w, image_h = image_size
    if view_w <= 0 or view_h <= 0:
        return (x, y)
    return (x * (image_w / view_w), y * (image_h / view_h))


def fit_size(image_size: Tuple[int, int], bounds: Tuple[int, int]) -> Tuple[int, int]:
    """Largest size with the image's aspect ratio that fits within ``bounds``."""
    w, h = image_size
    max_w, max_h = bounds
    if w <= 0 or h <= 0 or max_w <= 0 or max_h <= 0:
        return (0, 0)
    scale = min(max_w / w, max_h / h)
    return (max(1, int(w * scale)), max(1, int(h * scale)))
