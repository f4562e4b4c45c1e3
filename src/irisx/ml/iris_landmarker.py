"""Iris landmark stage: eye contour and iris points for both eyes.

The two eyes are independent: each has its own engine, ROI and outputs. The
left eye runs on a worker thread while the right eye runs on the caller's
thread, and the stage only returns once both are done.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from irisx.ml.engine import input_hw
from irisx.ml.geometry import Point, Rect, crop_frame, eye_roi, remap_landmark

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from irisx.ml.engine import InferenceEngine
    from irisx.ml.face_landmarker import FaceLandmarker

logger = logging.getLogger(__name__)

EYE_LANDMARKS: int = 71
IRIS_LANDMARKS: int = 5

EYE_CONTOUR_OUTPUT: int = 0
IRIS_OUTPUT: int = 1

# Face mesh indices bounding each eye region.
LEFT_EYE_CORNERS: tuple[int, int] = (446, 464)
RIGHT_EYE_CORNERS: tuple[int, int] = (244, 226)


@dataclass
class _EyeSlot:
    engine: InferenceEngine
    corners: tuple[int, int]
    roi: Rect = field(default_factory=Rect)
    has_output: bool = False


class IrisLandmarker:
    """Derives eye ROIs from face landmarks and runs the iris model on each eye."""

    def __init__(self, left_engine: InferenceEngine, right_engine: InferenceEngine) -> None:
        if left_engine is right_engine:
            raise ValueError("Left and right eye need separate engine instances")
        self._left = _EyeSlot(engine=left_engine, corners=LEFT_EYE_CORNERS)
        self._right = _EyeSlot(engine=right_engine, corners=RIGHT_EYE_CORNERS)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="iris-left-eye")

    def reset(self) -> None:
        for slot in (self._left, self._right):
            slot.roi = Rect()
            slot.has_output = False

    def run(self, image: NDArray[np.uint8], face: FaceLandmarker, parallel: bool = True) -> None:
        """Run both eyes on ``image`` using the landmarks of ``face``.

        With ``parallel=False`` the eyes run one after the other on the
        calling thread.
        """
        if face.roi.empty:
            self.reset()
            return

        if not parallel:
            self._run_eye(self._left, image, face)
            self._run_eye(self._right, image, face)
            return

        left = self._executor.submit(self._run_eye, self._left, image, face)
        try:
            self._run_eye(self._right, image, face)
        finally:
            # Join before leaving so the left slot is never read half-written.
            left_exc = left.exception()
        if left_exc is not None:
            raise left_exc

    def eye_roi(self, left: bool) -> Rect:
        return self._slot(left).roi

    def raw_output(self, left: bool, iris: bool) -> NDArray[np.float32]:
        """Raw ``x, y, z`` triples of the eye contour (or iris) output."""
        slot = self._slot(left)
        if not slot.has_output:
            return np.zeros(0, dtype=np.float32)
        count = IRIS_LANDMARKS if iris else EYE_LANDMARKS
        return slot.engine.get_output(IRIS_OUTPUT if iris else EYE_CONTOUR_OUTPUT)[: count * 3]

    def eye_landmark_at(self, index: int, left: bool, iris: bool) -> Point:
        """Eye contour point (0-70) or iris point (0-4) in original image pixels."""
        count = IRIS_LANDMARKS if iris else EYE_LANDMARKS
        if index < 0 or index >= count:
            logger.warning("%s landmark index %d is out of range (%d)", "Iris" if iris else "Eye", index, count)
            return Point()

        slot = self._slot(left)
        if not slot.has_output:
            return Point()

        raw = slot.engine.get_output(IRIS_OUTPUT if iris else EYE_CONTOUR_OUTPUT)
        height, width = input_hw(slot.engine.get_input_shape())
        return remap_landmark(raw[index * 3], raw[index * 3 + 1], slot.roi, width, height)

    def all_eye_landmarks(self, left: bool, iris: bool) -> list[Point]:
        if not self._slot(left).has_output:
            return []
        count = IRIS_LANDMARKS if iris else EYE_LANDMARKS
        return [self.eye_landmark_at(i, left, iris) for i in range(count)]

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    # -- Internal -----------------------------------------------------------

    def _slot(self, left: bool) -> _EyeSlot:
        return self._left if left else self._right

    @staticmethod
    def _run_eye(slot: _EyeSlot, image: NDArray[np.uint8], face: FaceLandmarker) -> None:
        slot.has_output = False
        first, second = slot.corners
        slot.roi = eye_roi(face.landmark_at(first), face.landmark_at(second))
        if slot.roi.empty:
            logger.debug("Eye ROI is empty for corners %s; skipping", slot.corners)
            return

        patch = crop_frame(image, slot.roi)
        slot.engine.load_image(patch)
        slot.engine.run()
        slot.has_output = True
