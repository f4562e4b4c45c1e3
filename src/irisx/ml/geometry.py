"""ROI geometry: rectangles, face/eye regions, padded crops, landmark remapping."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


class Point(NamedTuple):
    """An integer pixel position in the original image."""

    x: int = 0
    y: int = 0


@dataclass(frozen=True)
class RectF:
    """A float rectangle, normalized to [0, 1] when it comes from a detector."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)


@dataclass(frozen=True)
class Rect:
    """An integer rectangle in absolute pixels."""

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    @property
    def empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


def face_roi_from_detection(
    region: RectF,
    image_width: int,
    image_height: int,
    scale_x: float = 1.5,
    scale_y: float = 2.0,
) -> Rect:
    """Convert a normalized detection box into a looser face crop in pixels.

    The box is scaled around its center so the crop keeps the forehead and
    chin the landmark model expects to see.
    """
    cx, cy = region.center
    cx *= image_width
    cy *= image_height

    w = region.width * image_width * scale_x
    h = region.height * image_height * scale_y

    return Rect(int(int(cx) - w / 2), int(int(cy) - h / 2), int(w), int(h))


def eye_roi(p1: Point, p2: Point) -> Rect:
    """Square box centered between two eye-corner landmarks."""
    cx = int((p1.x + p2.x) / 2)
    cy = int((p1.y + p2.y) / 2)
    size = max(abs(p1.x - p2.x), abs(p1.y - p2.y))
    half = int(size / 2)
    return Rect(cx - half, cy - half, size, size)


def crop_frame(image: NDArray[np.uint8], roi: Rect) -> NDArray[np.uint8]:
    """Crop ``roi`` out of ``image``, zero-padding whatever falls outside it.

    The result always has shape ``(roi.height, roi.width, channels)``.
    """
    channels = image.shape[2:] if image.ndim == 3 else ()
    if roi.empty:
        return np.zeros((0, 0, *channels), dtype=image.dtype)

    out = np.zeros((roi.height, roi.width, *channels), dtype=image.dtype)
    rows, cols = image.shape[:2]

    src_x0 = max(roi.x, 0)
    src_y0 = max(roi.y, 0)
    src_x1 = min(roi.x + roi.width, cols)
    src_y1 = min(roi.y + roi.height, rows)
    if src_x1 <= src_x0 or src_y1 <= src_y0:
        return out

    dst_x0 = src_x0 - roi.x
    dst_y0 = src_y0 - roi.y
    out[dst_y0 : dst_y0 + (src_y1 - src_y0), dst_x0 : dst_x0 + (src_x1 - src_x0)] = image[
        src_y0:src_y1, src_x0:src_x1
    ]
    return out


def remap_landmark(raw_x: float, raw_y: float, roi: Rect, input_width: int, input_height: int) -> Point:
    """Map a landmark from model input pixels back into original image pixels."""
    x = int(raw_x / input_width * roi.width) + roi.x
    y = int(raw_y / input_height * roi.height) + roi.y
    return Point(x, y)
