"""Face landmark stage: 468 face mesh points inside the face ROI."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from irisx.ml.engine import input_hw
from irisx.ml.geometry import Point, Rect, crop_frame, remap_landmark

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from irisx.ml.engine import InferenceEngine

logger = logging.getLogger(__name__)

FACE_LANDMARKS: int = 468


class FaceLandmarker:
    """Crops the face ROI, runs the landmark model and remaps its points."""

    def __init__(self, engine: InferenceEngine) -> None:
        self._engine = engine
        self._roi = Rect()
        self._has_output = False

    @property
    def roi(self) -> Rect:
        return self._roi

    def reset(self) -> None:
        """Forget the previous run, e.g. after a frame without a face."""
        self._roi = Rect()
        self._has_output = False

    def run(self, image: NDArray[np.uint8], roi: Rect) -> None:
        """Run the landmark model on ``roi`` of ``image``."""
        self._roi = roi
        self._has_output = False
        if roi.empty:
            return

        face = crop_frame(image, roi)
        self._engine.load_image(face)
        self._engine.run()
        self._has_output = True

    def raw_output(self) -> NDArray[np.float32]:
        """Raw ``x, y, z`` triples in landmark-model input pixels."""
        if not self._has_output:
            return np.zeros(0, dtype=np.float32)
        return self._engine.get_output()[: FACE_LANDMARKS * 3]

    def landmark_at(self, index: int) -> Point:
        """Landmark ``index`` (0-467) in original image pixels; zero point if invalid."""
        if index < 0 or index >= FACE_LANDMARKS:
            logger.warning("Face landmark index %d is out of range (%d)", index, FACE_LANDMARKS)
            return Point()
        if not self._has_output:
            return Point()

        raw = self._engine.get_output()
        height, width = input_hw(self._engine.get_input_shape())
        return remap_landmark(raw[index * 3], raw[index * 3 + 1], self._roi, width, height)

    def all_landmarks(self) -> list[Point]:
        if self._roi.empty or not self._has_output:
            return []
        return [self.landmark_at(i) for i in range(FACE_LANDMARKS)]
