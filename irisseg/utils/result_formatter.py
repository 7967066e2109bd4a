"""
User-facing formatting of analysis outcomes.

Turns results, failures and manual adjustments into the short messages shown
next to the overlay editor and printed by the command line.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..core.constants import LOW_CONFIDENCE_THRESHOLD
from ..core.entities import AdjustmentSummary, Circle, CircleAdjustment, DetectionResult
from ..core.exceptions import (
    AnalysisError, EngineFailureError, EngineTimeoutError, ImageRejectedError,
    ParseFailureError, TransportFailureError
)

logger = logging.getLogger(__name__)

REJECTION_GUIDANCE = [
    "A visible iris (colored part of the eye)",
    "A visible pupil (dark center)",
    "Good lighting and focus",
    "The eye should be open and clearly visible",
]

_DIAGNOSTIC_LIMIT = 2000


@dataclass(frozen=True)
class UserMessage:
    title: str
    body: str
    severity: str = "error"  # error | warning | success
    guidance: List[str] = field(default_factory=list)

    def as_text(self) -> str:
        lines = [self.title, self.body]
        if self.guidance:
            lines.append("Please upload a clear image of an eye. The image should show:")
            lines.extend(f"  - {item}" for item in self.guidance)
        return "\n".join(line for line in lines if line)


def format_analysis_error(error: AnalysisError) -> UserMessage:
    """Message for a failed analysis.

    Domain rejections get remediation guidance; process and transport
    failures get the captured diagnostics instead.
    """
    if isinstance(error, ImageRejectedError):
        return UserMessage(
            title="⚠️ Invalid Image",
            body=error.message,
            severity="warning",
            guidance=list(REJECTION_GUIDANCE),
        )

    body = error.message
    if isinstance(error, TransportFailureError) and error.hint:
        body = f"{body}\nHint: {error.hint}"
    elif isinstance(error, EngineTimeoutError):
        body = f"{body}. You can submit the image again."
    elif isinstance(error, ParseFailureError):
        body = f"{body}\nRaw output: {_truncate(error.raw)}"
    elif isinstance(error, EngineFailureError) and error.exit_code is not None:
        body = (f"Detection engine failed with exit code {error.exit_code}.\n"
                f"Error output: {_truncate(error.stderr) or '<empty>'}\n"
                f"Standard output: {_truncate(error.stdout) or '<empty>'}")

    return UserMessage(title="Error", body=body)


def format_confidence(confidence: Optional[float],
                      threshold: float = LOW_CONFIDENCE_THRESHOLD) -> Optional[UserMessage]:
    if confidence is None:
        return None
    text = f"Eye Detection Confidence: {confidence * 100:.1f}%"
    if confidence > threshold:
        return UserMessage(title="Detection", body=text, severity="success")
    return UserMessage(
        title="Detection",
        body=f"{text} - Low confidence, results may be less accurate",
        severity="warning",
    )


def format_result(result: DetectionResult) -> str:
    return "\n".join([
        f"Pupil: Center at ({result.pupil_center_x}, {result.pupil_center_y}), Radius: {result.pupil_radius}",
        f"Iris: Center at ({result.iris_center_x}, {result.iris_center_y}), Radius: {result.iris_radius}",
    ])


def summarize_adjustment(baseline: DetectionResult, adjusted: DetectionResult) -> AdjustmentSummary:
    """Per-circle difference between the detected and the edited geometry."""
    def _circle(which: Circle) -> CircleAdjustment:
        bx, by, br = baseline.circle(which)
        ax, ay, ar = adjusted.circle(which)
        return CircleAdjustment(center_moved=abs(ax - bx) + abs(ay - by), radius_changed=ar - br)

    return AdjustmentSummary(iris=_circle(Circle.IRIS), pupil=_circle(Circle.PUPIL))


def format_adjustment_summary(summary: AdjustmentSummary) -> str:
    lines = ["Adjustment Summary:"]
    for label, adj in (("Iris", summary.iris), ("Pupil", summary.pupil)):
        lines.append(f"  {label} Changes:")
        lines.append(f"    Center moved: {adj.center_moved:g} pixels")
        lines.append(f"    Radius changed: {adj.radius_changed:+g} pixels")
    return "\n".join(lines)


def _truncate(text: str, limit: int = _DIAGNOSTIC_LIMIT) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + f"... ({len(text) - limit} more characters)"
