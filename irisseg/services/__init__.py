"""Detection services: engine bridge, dispatch and wire codec."""

from .transport_codec import Transport, encode_request, decode_response, encode_response
from .engine_locator import EngineLocator
from .detection_bridge import CancellationToken, DetectionBridge
from .dispatch_adapter import DispatchAdapter, embedded_runtime_available

__all__ = [
    "Transport", "encode_request", "decode_response", "encode_response",
    "EngineLocator", "CancellationToken", "DetectionBridge",
    "DispatchAdapter", "embedded_runtime_available"
]
