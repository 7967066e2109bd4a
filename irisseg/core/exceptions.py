"""Custom exceptions for the application."""
from __future__ import annotations

from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .entities import DetectionError


class ApplicationError(Exception):
    """Base application error."""
    pass


class ConfigError(ApplicationError):
    """Configuration-related errors."""
    pass


class CodecError(ApplicationError):
    """Wire payload could not be decoded into a result or an error."""
    pass


class AnalysisError(ApplicationError):
    """Base class for everything that can end an analysis request.

    Every subclass carries a ``kind`` tag so callers that only want to branch
    on the failure category do not need isinstance chains.
    """

    kind = "AnalysisError"
    is_domain_rejection = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EngineNotFoundError(AnalysisError):
    """Detection engine binary missing at every candidate location."""

    kind = "EngineNotFound"

    def __init__(self, checked_paths: List[str]):
        self.checked_paths = list(checked_paths)
        listing = ", ".join(self.checked_paths) or "<no candidates configured>"
        super().__init__(f"Detection engine not found. Checked: {listing}")


class EngineTimeoutError(AnalysisError):
    """Engine exceeded its deadline and was killed."""

    kind = "Timeout"

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Detection engine timed out after {timeout_seconds:g} seconds")


class EngineFailureError(AnalysisError):
    """Engine exited with a non-zero code."""

    kind = "EngineFailure"

    def __init__(self, exit_code: Optional[int], stderr: str = "", stdout: str = "",
                 message: Optional[str] = None):
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout
        if message is None:
            message = (f"Detection engine failed with exit code {exit_code}. "
                       f"Error output: {stderr}. Standard output: {stdout}")
        super().__init__(message)


class EngineSpawnError(EngineFailureError):
    """Engine process could not be started at all."""

    def __init__(self, command: List[str], reason: str):
        self.command = list(command)
        super().__init__(
            None,
            message=(f"Failed to start detection engine: {reason}. "
                     f"Check that '{self.command[0]}' is installed and on the PATH"),
        )


class ParseFailureError(AnalysisError):
    """Engine exited cleanly but its output could not be decoded."""

    kind = "ParseFailure"

    def __init__(self, raw: str, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Failed to parse detection engine output: {reason}")


class TransportFailureError(AnalysisError):
    """Network backend unreachable or returned an unusable response."""

    kind = "TransportFailure"

    def __init__(self, message: str, hint: Optional[str] = None,
                 status_code: Optional[int] = None):
        self.hint = hint
        self.status_code = status_code
        super().__init__(message)


class AnalysisCancelledError(AnalysisError):
    """Request was cancelled by its caller before the engine finished."""

    kind = "Cancelled"

    def __init__(self):
        super().__init__("Analysis was cancelled")


class ImageRejectedError(AnalysisError):
    """Engine ran and explicitly rejected the image (e.g. NOT_AN_EYE)."""

    kind = "NotAnEye"
    is_domain_rejection = True

    def __init__(self, detection_error: "DetectionError"):
        self.detection_error = detection_error
        self.error_code = detection_error.error_code
        super().__init__(detection_error.message or detection_error.error_code)
