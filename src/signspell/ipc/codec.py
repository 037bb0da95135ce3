"""Image codec for IPC transmission.

Encodes BGR images as base64 JPEG so they fit in JSON messages, and
decodes them back on the runtime side.
"""

import base64
from typing import Any, Dict

import cv2
import numpy as np

from signspell.types import EncodedImage


def encode_image(image: np.ndarray, jpeg_quality: int = 80) -> EncodedImage:
    """Encode a BGR image for transmission.

    Args:
        image: ``(H, W, 3)`` uint8 BGR image.
        jpeg_quality: JPEG compression quality (0-100).

    Raises:
        ValueError: If the image cannot be encoded.
    """
    if image is None or image.ndim < 2 or image.size == 0:
        raise ValueError("Cannot encode an empty image")

    ok, jpeg_data = cv2.imencode(
        ".jpg", image,
        [cv2.IMWRITE_JPEG_QUALITY, int(jpeg_quality)],
    )
    if not ok:
        raise ValueError("JPEG encoding failed")

    height, width = image.shape[:2]
    return EncodedImage(
        data_b64=base64.b64encode(jpeg_data.tobytes()).decode("ascii"),
        width=int(width),
        height=int(height),
    )


def decode_image(data: EncodedImage) -> np.ndarray:
    """Decode an EncodedImage back into a BGR array.

    Raises:
        ValueError: If image data cannot be decoded.
    """
    try:
        jpeg_bytes = base64.b64decode(data.data_b64, validate=True)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e

    nparr = np.frombuffer(jpeg_bytes, np.uint8)
    img = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if img is None:
        raise ValueError("Failed to decode image data")
    return img


def image_to_message(data: EncodedImage) -> Dict[str, Any]:
    return {"data_b64": data.data_b64, "width": data.width, "height": data.height}


def image_from_message(data: Dict[str, Any]) -> EncodedImage:
    """Rebuild an EncodedImage from its message form.

    Raises:
        ValueError: If ``data_b64`` is missing.
    """
    if not isinstance(data, dict) or "data_b64" not in data:
        raise ValueError("Image message requires 'data_b64'")
    return EncodedImage(
        data_b64=data["data_b64"],
        width=int(data.get("width", 0)),
        height=int(data.get("height", 0)),
    )


__all__ = ["encode_image", "decode_image", "image_to_message", "image_from_message"]
