"""Wire schema shared by the subprocess and network transports.

Both the embedded bridge and the detached HTTP client go through the same
encoder/decoder pair, so a response that decodes on one transport decodes
identically on the other.

Response decoding rules:

* the body must be a JSON object;
* an object carrying ``errorCode`` is a ``DetectionError``;
* otherwise the six geometry fields must all be present, numeric and finite,
  giving a ``DetectionResult``;
* anything else raises ``CodecError``. Missing numbers are never defaulted
  to zero.
"""
from __future__ import annotations

import json
import math
from enum import Enum
from typing import Any, Dict, Mapping, Union

from ..core.entities import DetectionError, DetectionOutcome, DetectionResult, ImagePayload
from ..core.exceptions import CodecError


class Transport(str, Enum):
    SUBPROCESS = "subprocess"
    NETWORK = "network"


# python attribute -> wire field
GEOMETRY_FIELDS = {
    "pupil_center_x": "pupilCenterX",
    "pupil_center_y": "pupilCenterY",
    "pupil_radius": "pupilRadius",
    "iris_center_x": "irisCenterX",
    "iris_center_y": "irisCenterY",
    "iris_radius": "irisRadius",
}
CONFIDENCE_FIELD = "eyeConfidence"
ERROR_CODE_FIELD = "errorCode"
MESSAGE_FIELD = "message"
IMAGE_DATA_FIELD = "imageData"


def encode_request(payload: ImagePayload, transport: Transport = Transport.SUBPROCESS) -> bytes:
    """Encode an analysis request for the given transport.

    The subprocess transport takes the raw payload bytes with no envelope;
    the network transport wraps the payload text as ``{"imageData": ...}``.
    """
    if transport is Transport.SUBPROCESS:
        return bytes(payload.data)
    if transport is Transport.NETWORK:
        return json.dumps({IMAGE_DATA_FIELD: payload.as_text()}).encode("utf-8")
    raise ValueError(f"Unknown transport: {transport}")


def decode_response(data: Union[bytes, str, Mapping[str, Any]]) -> DetectionOutcome:
    """Decode an engine or server response body.

    Raises:
        CodecError: If the body is not JSON or does not match either shape
    """
    if isinstance(data, Mapping):
        body = data
    else:
        if isinstance(data, (bytes, bytearray)):
            try:
                data = bytes(data).decode("utf-8")
            except UnicodeDecodeError as e:
                raise CodecError(f"Response is not valid UTF-8: {e}") from e
        text = data.strip()
        if not text:
            raise CodecError("Response is empty")
        try:
            body = json.loads(text)
        except json.JSONDecodeError as e:
            raise CodecError(f"Response is not valid JSON: {e}") from e

    if not isinstance(body, Mapping):
        raise CodecError(f"Expected a JSON object, got {type(body).__name__}")

    if ERROR_CODE_FIELD in body:
        return _decode_error(body)
    return _decode_result(body)


def encode_response(outcome: DetectionOutcome) -> bytes:
    """Encode a result or error exactly as the engine would print it."""
    return json.dumps(response_to_dict(outcome)).encode("utf-8")


def response_to_dict(outcome: DetectionOutcome) -> Dict[str, Any]:
    if isinstance(outcome, DetectionError):
        return {ERROR_CODE_FIELD: outcome.error_code, MESSAGE_FIELD: outcome.message}
    body = {wire: getattr(outcome, attr) for attr, wire in GEOMETRY_FIELDS.items()}
    if outcome.eye_confidence is not None:
        body[CONFIDENCE_FIELD] = outcome.eye_confidence
    return body


def _decode_error(body: Mapping[str, Any]) -> DetectionError:
    error_code = body[ERROR_CODE_FIELD]
    if not isinstance(error_code, str) or not error_code:
        raise CodecError(f"'{ERROR_CODE_FIELD}' must be a non-empty string")
    message = body.get(MESSAGE_FIELD) or ""
    if not isinstance(message, str):
        message = str(message)
    return DetectionError(error_code=error_code, message=message)


def _decode_result(body: Mapping[str, Any]) -> DetectionResult:
    missing = [wire for wire in GEOMETRY_FIELDS.values() if wire not in body]
    if missing:
        raise CodecError(f"Response is missing fields: {', '.join(missing)}")

    values = {attr: _finite_number(body, wire) for attr, wire in GEOMETRY_FIELDS.items()}
    confidence = None
    if body.get(CONFIDENCE_FIELD) is not None:
        confidence = _finite_number(body, CONFIDENCE_FIELD)
    return DetectionResult(eye_confidence=confidence, **values)


def _finite_number(body: Mapping[str, Any], wire: str) -> Union[int, float]:
    value = body[wire]
    # bool is an int subclass; true/false is never a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CodecError(f"Field '{wire}' must be a number, got {value!r}")
    if not math.isfinite(value):
        raise CodecError(f"Field '{wire}' must be finite, got {value!r}")
    return value
