"""Interactive editor for the pupil and iris overlay circles.

The editor is a small state machine over ``OverlayState``. Pointer and form
events arrive one at a time from the UI event loop; every event computes a
complete new state and installs it with a single assignment, so a reader
never sees a half-applied update.

Events:
    pointer_down   select the circle whose outline is under the pointer and
                   start dragging it (iris wins when both are in range)
    pointer_move   move the selected center (position mode) or resize the
                   selected circle (radius mode)
    pointer_up     commit the drag and notify the observer
    set_radius     numeric entry, clamped and committed immediately
    reset          restore the detected geometry

The nesting constraint ``iris_radius >= pupil_radius + margin`` is applied
to every radius change. Violations are clamped, never raised.
"""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Callable, Optional, Protocol, Tuple, Union

from ..core.constants import OVERLAY_MARGIN
from ..core.entities import AdjustmentMode, Circle, DetectionResult, OverlayState
from ..utils.geometry import (
    clamp_iris_radius, clamp_pupil_radius, distance, is_near_circumference,
    round_half_up, view_to_image
)

logger = logging.getLogger(__name__)

Size = Tuple[float, float]
RadiusInput = Union[str, int, float]

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class OverlayObserver(Protocol):
    def on_commit(self, result: DetectionResult) -> None:
        ...


ObserverLike = Union[OverlayObserver, Callable[[DetectionResult], None]]


class OverlayEditor:
    """Owns the working overlay state and enforces the radius constraint."""

    def __init__(self, observer: Optional[ObserverLike] = None, margin: float = OVERLAY_MARGIN):
        self._observer = observer
        self._margin = margin
        self._baseline: Optional[DetectionResult] = None
        self._state: Optional[OverlayState] = None
        self._image_size: Optional[Size] = None

    @property
    def state(self) -> Optional[OverlayState]:
        return self._state

    @property
    def baseline(self) -> Optional[DetectionResult]:
        return self._baseline

    @property
    def margin(self) -> float:
        return self._margin

    @property
    def is_loaded(self) -> bool:
        return self._state is not None

    def load(self, result: DetectionResult, image_size: Optional[Size] = None) -> None:
        """Start editing a new analysis result, discarding the previous state."""
        self._baseline = result
        self._state = OverlayState(geometry=result)
        if image_size is not None:
            self._image_size = image_size
        logger.debug("Overlay editor loaded new detection result")

    def clear(self) -> None:
        """Forget the loaded result; pointer and form events become no-ops."""
        self._baseline = None
        self._state = None

    def set_image_size(self, width: float, height: float) -> None:
        """Native pixel size of the image the overlay is drawn on."""
        self._image_size = (width, height)

    def select(self, circle: Optional[Circle]) -> None:
        if self._state is not None:
            self._state = replace(self._state, selected_circle=circle)

    def set_mode(self, mode: AdjustmentMode) -> None:
        if self._state is not None:
            self._state = replace(self._state, mode=AdjustmentMode(mode))

    def pointer_down(self, x: float, y: float, view_size: Optional[Size] = None) -> bool:
        """Begin a drag if the pointer is on a circle outline.

        Returns:
            True if a circle was picked up
        """
        state = self._state
        if state is None:
            return False

        px, py = self._to_image(x, y, view_size)
        hit = self._hit_test(state.geometry, px, py)
        if hit is None:
            return False

        self._state = replace(state, selected_circle=hit, dragging=True, anchor=(px, py))
        logger.debug(f"Picked up {hit.value} circle at ({px:.1f}, {py:.1f})")
        return True

    def pointer_move(self, x: float, y: float, view_size: Optional[Size] = None) -> bool:
        """Apply a drag step. Returns True if the geometry changed."""
        state = self._state
        if state is None or not state.dragging or state.selected_circle is None:
            return False

        px, py = self._to_image(x, y, view_size)
        which = state.selected_circle
        geometry = state.geometry
        cx, cy, _ = geometry.circle(which)

        if state.mode is AdjustmentMode.POSITION:
            ax, ay = state.anchor
            geometry = geometry.with_center(
                which, round_half_up(cx + (px - ax)), round_half_up(cy + (py - ay))
            )
        else:
            proposed = round_half_up(distance(px, py, cx, cy))
            geometry = geometry.with_radius(which, self._clamp(geometry, which, proposed))

        changed = geometry != state.geometry
        self._state = replace(state, geometry=geometry, anchor=(px, py))
        return changed

    def pointer_up(self) -> Optional[DetectionResult]:
        """End a drag and publish the committed geometry.

        The selection is kept so a following radius drag needs no re-select.
        """
        state = self._state
        if state is None or not state.dragging:
            return None

        self._state = replace(state, dragging=False, anchor=None)
        self._notify(self._state.geometry)
        return self._state.geometry

    def pointer_leave(self) -> Optional[DetectionResult]:
        return self.pointer_up()

    def set_radius(self, circle: Circle, value: RadiusInput) -> Optional[DetectionResult]:
        """Numeric radius entry; clamped and committed immediately."""
        state = self._state
        if state is None:
            return None

        which = Circle(circle)
        radius = self._clamp(state.geometry, which, _parse_radius(value))
        geometry = state.geometry.with_radius(which, radius)
        self._state = replace(state, geometry=geometry)
        self._notify(geometry)
        return geometry

    def reset(self) -> Optional[DetectionResult]:
        """Restore the detected geometry and publish the original result object."""
        if self._baseline is None or self._state is None:
            return None

        self._state = replace(self._state, geometry=self._baseline, dragging=False, anchor=None)
        self._notify(self._baseline)
        return self._baseline

    def _clamp(self, geometry: DetectionResult, which: Circle, proposed: float) -> float:
        if which is Circle.IRIS:
            return clamp_iris_radius(proposed, geometry.pupil_radius, self._margin)
        return clamp_pupil_radius(proposed, geometry.iris_radius, self._margin)

    def _hit_test(self, geometry: DetectionResult, px: float, py: float) -> Optional[Circle]:
        # iris first: overlapping tolerance bands favor the iris
        for which in (Circle.IRIS, Circle.PUPIL):
            cx, cy, r = geometry.circle(which)
            if is_near_circumference(px, py, cx, cy, r, self._margin):
                return which
        return None

    def _to_image(self, x: float, y: float, view_size: Optional[Size]) -> Tuple[float, float]:
        if view_size is None or self._image_size is None:
            return (x, y)
        return view_to_image(x, y, view_size, self._image_size)

    def _notify(self, geometry: DetectionResult) -> None:
        if self._observer is None:
            return
        callback = getattr(self._observer, "on_commit", self._observer)
        try:
            callback(geometry)
        except Exception:
            logger.exception("Overlay observer failed while handling a commit")


def _parse_radius(value: RadiusInput) -> int:
    """Integer radius from form input; unparseable text counts as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else 0
