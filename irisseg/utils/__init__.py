"""Utility functions package."""

from .geometry import (
    round_half_up, distance, is_near_circumference, clamp_iris_radius,
    clamp_pupil_radius, view_to_image, fit_size
)
from .result_formatter import (
    UserMessage, format_analysis_error, format_confidence, format_result,
    summarize_adjustment, format_adjustment_summary
)

__all__ = [
    "round_half_up", "distance", "is_near_circumference", "clamp_iris_radius",
    "clamp_pupil_radius", "view_to_image", "fit_size",
    "UserMessage", "format_analysis_error", "format_confidence", "format_result",
    "summarize_adjustment", "format_adjustment_summary"
]
