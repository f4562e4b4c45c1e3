"""Image decoding for uploaded files.

The pipeline works on OpenCV-style BGR frames, so uploads are decoded with
``cv2.imdecode`` and validated against the configured pixel limit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


def decode_image(image_bytes: bytes, max_pixels: int) -> NDArray[np.uint8]:
    """Decode raw image bytes into a BGR uint8 array.

    Args:
        image_bytes: Raw file bytes (any format OpenCV can read).
        max_pixels: Upper bound on width * height.

    Returns:
        HxWx3 BGR uint8 numpy array.

    Raises:
        ValueError: If the image cannot be decoded or exceeds the pixel limit.
    """
    if not image_bytes:
        raise ValueError("Empty image data")

    buffer = np.frombuffer(image_bytes, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("Could not decode image")

    height, width = image.shape[:2]
    if height * width > max_pixels:
        raise ValueError(f"Image has {height * width} pixels, limit is {max_pixels}")
    return image
