"""Face detection stage.

Runs the detector on the full frame and turns the best detection into a face
ROI in original image pixels. An empty ROI means no face was found.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from irisx.ml.geometry import Rect, face_roi_from_detection
from irisx.ml.postprocess import NO_DETECTION, Detection

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from irisx.ml.engine import InferenceEngine
    from irisx.ml.postprocess import DetectionPostProcess

logger = logging.getLogger(__name__)

REGRESSOR_OUTPUT: int = 0
CLASSIFICATOR_OUTPUT: int = 1


class FaceDetector:
    """Detects the most confident face in a frame."""

    def __init__(
        self,
        engine: InferenceEngine,
        postprocess: DetectionPostProcess,
        scale_x: float = 1.5,
        scale_y: float = 2.0,
    ) -> None:
        self._engine = engine
        self._postprocess = postprocess
        self._scale_x = scale_x
        self._scale_y = scale_y
        self._detection: Detection = NO_DETECTION
        self._face_roi = Rect()

    @property
    def detection(self) -> Detection:
        """Best detection of the last run, relative to the detector input."""
        return self._detection

    @property
    def face_roi(self) -> Rect:
        """Face region of the last run in original image pixels."""
        return self._face_roi

    def detect(self, image: NDArray[np.uint8]) -> Rect:
        """Run the detector on ``image`` and return the face ROI (empty if none)."""
        self._engine.load_image(image)
        self._engine.run()

        regressor = self._engine.get_output(REGRESSOR_OUTPUT)
        classificator = self._engine.get_output(CLASSIFICATOR_OUTPUT)
        self._detection = self._postprocess.highest_score_detection(regressor, classificator)

        if self._detection.found:
            height, width = image.shape[:2]
            self._face_roi = face_roi_from_detection(
                self._detection.region, width, height, self._scale_x, self._scale_y
            )
        else:
            self._face_roi = Rect()

        logger.debug("Face ROI: %s", self._face_roi)
        return self._face_roi
