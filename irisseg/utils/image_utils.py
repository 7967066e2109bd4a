"""Image processing utilities."""

import base64
import binascii

import cv2
import numpy as np

from ..core.entities import ImagePayload


def decode_payload_image(payload: ImagePayload) -> np.ndarray:
    """Decode an image payload into a BGR numpy array.

    Raises:
        ValueError: If the payload is not base64 or not a decodable image
    """
    try:
        raw = base64.b64decode(payload.strip_data_uri_prefix(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e

    image = cv2.imdecode(np.frombuffer(raw, dtype=np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("Failed to decode image from payload")
    return image


def resize_image(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize to an exact display size."""
    h, w = image.shape[:2]
    if (w, h) == (width, height):
        return image
    interpolation = cv2.INTER_AREA if width < w else cv2.INTER_LINEAR
    return cv2.resize(image, (width, height), interpolation=interpolation)
