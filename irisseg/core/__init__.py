"""Core domain entities and constants."""

from .entities import (
    ImagePayload, DetectionResult, DetectionError, OverlayState,
    Circle, AdjustmentMode, AdjustmentSummary, CircleAdjustment
)
from .exceptions import (
    ApplicationError, ConfigError, CodecError, AnalysisError,
    EngineNotFoundError, EngineTimeoutError, EngineFailureError, EngineSpawnError,
    ParseFailureError, TransportFailureError, AnalysisCancelledError, ImageRejectedError
)
from .constants import APP_NAME, VERSION, OVERLAY_MARGIN

__all__ = [
    "ImagePayload", "DetectionResult", "DetectionError", "OverlayState",
    "Circle", "AdjustmentMode", "AdjustmentSummary", "CircleAdjustment",
    "ApplicationError", "ConfigError", "CodecError", "AnalysisError",
    "EngineNotFoundError", "EngineTimeoutError", "EngineFailureError", "EngineSpawnError",
    "ParseFailureError", "TransportFailureError", "AnalysisCancelledError", "ImageRejectedError",
    "APP_NAME", "VERSION", "OVERLAY_MARGIN"
]
