"""Unit tests for payload image decoding and display resizing."""
import base64

import cv2
import numpy as np
import pytest

from irisseg.core.entities import ImagePayload
from irisseg.utils.image_utils import decode_payload_image, resize_image


def _png_payload(image: np.ndarray) -> ImagePayload:
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return ImagePayload.from_data_uri("data:image/png;base64," + base64.b64encode(buffer.tobytes()).decode())


class TestDecodePayloadImage:

    def test_decodes_png_data_uri(self, sample_image):
        decoded = decode_payload_image(_png_payload(sample_image))

        assert np.array_equal(decoded, sample_image)

    def test_invalid_base64_raises(self):
        with pytest.raises(ValueError):
            decode_payload_image(ImagePayload.from_data_uri("data:image/png;base64,!!!not base64"))

    def test_non_image_bytes_raise(self):
        with pytest.raises(ValueError, match="decode"):
            decode_payload_image(ImagePayload.from_data_uri("data:image/png;base64,aGVsbG8gd29ybGQ="))


class TestResizeImage:

    def test_same_size_returns_input(self, sample_image):
        assert resize_image(sample_image, 200, 200) is sample_image

    def test_resizes_to_exact_size(self, sample_image):
        assert resize_image(sample_image, 50, 80).shape == (80, 50, 3)
