"""Tests for the JPEG/base64 image codec."""

import numpy as np
import pytest

from signspell.ipc.codec import (
    decode_image,
    encode_image,
    image_from_message,
    image_to_message,
)
from signspell.types import EncodedImage


class TestImageCodec:
    """Tests for image encoding used by detect requests."""

    def test_encode_records_dimensions(self, test_image):
        encoded = encode_image(test_image)
        assert encoded.width == 64
        assert encoded.height == 48
        assert encoded.data_b64

    def test_decode_restores_shape(self, test_image):
        decoded = decode_image(encode_image(test_image, jpeg_quality=95))
        assert decoded.shape == test_image.shape
        assert decoded.dtype == np.uint8

    def test_quality_affects_size(self, test_image):
        low = encode_image(test_image, jpeg_quality=10)
        high = encode_image(test_image, jpeg_quality=95)
        assert len(low.data_b64) < len(high.data_b64)

    def test_empty_image_rejected(self):
        with pytest.raises(ValueError):
            encode_image(np.zeros((0, 0, 3), dtype=np.uint8))

    def test_invalid_base64(self):
        with pytest.raises(ValueError):
            decode_image(EncodedImage(data_b64="not base64!", width=1, height=1))

    def test_non_image_bytes(self):
        with pytest.raises(ValueError, match="decode"):
            decode_image(EncodedImage(data_b64="aGVsbG8=", width=1, height=1))

    def test_message_form(self, test_image):
        encoded = encode_image(test_image)
        message = image_to_message(encoded)
        assert set(message) == {"data_b64", "width", "height"}
        assert image_from_message(message) == encoded

    def test_message_missing_data(self):
        with pytest.raises(ValueError):
            image_from_message({"width": 10})
        with pytest.raises(ValueError):
            image_from_message("image")
