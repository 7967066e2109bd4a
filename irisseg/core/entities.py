"""Domain entities (data-only structures) used across services."""
from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union
import base64

from .constants import SUPPORTED_IMAGE_FORMATS

CircleGeometry = Tuple[float, float, float]  # (cx, cy, radius)


class Circle(str, Enum):
    IRIS = "iris"
    PUPIL = "pupil"


class AdjustmentMode(str, Enum):
    POSITION = "position"
    RADIUS = "radius"


@dataclass(frozen=True, slots=True)
class ImagePayload:
    """Encoded image handed to the detection engine.

    The bytes are opaque to this application: usually a ``data:image/...;base64,``
    URI as produced by a browser FileReader, or bare base64 text.
    """
    data: bytes

    @classmethod
    def from_data_uri(cls, text: str) -> "ImagePayload":
        return cls(text.encode("ascii"))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ImagePayload":
        """Read an image file and wrap it as a base64 data URI."""
        path = Path(path)
        mime = SUPPORTED_IMAGE_FORMATS.get(path.suffix.lower())
        if mime is None:
            raise ValueError(f"Unsupported image format: {path.suffix or path.name}")
        encoded = base64.b64encode(path.read_bytes()).decode("ascii")
        return cls.from_data_uri(f"data:{mime};base64,{encoded}")

    def as_text(self) -> str:
        return self.data.decode("ascii")

    def strip_data_uri_prefix(self) -> bytes:
        """Return the base64 body without any ``data:...,`` prefix."""
        if self.data.startswith(b"data:"):
            _, sep, body = self.data.partition(b",")
            if sep:
                return body
        return self.data

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class DetectionResult:
    pupil_center_x: float
    pupil_center_y: float
    pupil_radius: float
    iris_center_x: float
    iris_center_y: float
    iris_radius: float
    eye_confidence: Optional[float] = None

    def circle(self, which: Circle) -> CircleGeometry:
        if which is Circle.IRIS:
            return (self.iris_center_x, self.iris_center_y, self.iris_radius)
        return (self.pupil_center_x, self.pupil_center_y, self.pupil_radius)

    def with_center(self, which: Circle, x: float, y: float) -> "DetectionResult":
        if which is Circle.IRIS:
            return replace(self, iris_center_x=x, iris_center_y=y)
        return replace(self, pupil_center_x=x, pupil_center_y=y)

    def with_radius(self, which: Circle, radius: float) -> "DetectionResult":
        if which is Circle.IRIS:
            return replace(self, iris_radius=radius)
        return replace(self, pupil_radius=radius)


@dataclass(frozen=True, slots=True)
class DetectionError:
    """Engine ran but refused the image (e.g. ``NOT_AN_EYE``)."""
    error_code: str
    message: str = ""


DetectionOutcome = Union[DetectionResult, DetectionError]


@dataclass(frozen=True, slots=True)
class OverlayState:
    """Snapshot of the overlay editor.

    Never mutated in place: every event builds a new instance which replaces
    the previous one in a single assignment.
    """
    geometry: DetectionResult
    selected_circle: Optional[Circle] = None
    mode: AdjustmentMode = AdjustmentMode.POSITION
    dragging: bool = False
    anchor: Optional[Tuple[float, float]] = None


@dataclass(frozen=True, slots=True)
class CircleAdjustment:
    center_moved: float  # Manhattan distance, in pixels
    radius_changed: float


@dataclass(frozen=True, slots=True)
class AdjustmentSummary:
    iris: CircleAdjustment
    pupil: CircleAdjustment
