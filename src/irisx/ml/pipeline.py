"""Detection -> face landmark -> iris pipeline.

Architecture:
    load_image -> IDLE -> DETECTION_RUN -> LANDMARK_RUN -> IRIS_RUN -> DONE

Each stage is a separate object that only receives its upstream stage's
results. A frame without a face goes straight from DETECTION_RUN to DONE and
the landmark and iris engines are never invoked.

A pipeline is single-writer: one ``run_inference`` at a time per instance.
``PipelinePool`` hands out whole pipelines to concurrent callers.
"""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from irisx.ml.anchors import load_anchor_table
from irisx.ml.engine import OnnxInferenceEngine
from irisx.ml.face_detector import FaceDetector
from irisx.ml.face_landmarker import FaceLandmarker
from irisx.ml.geometry import Point, Rect
from irisx.ml.iris_landmarker import IrisLandmarker
from irisx.ml.postprocess import NO_DETECTION, Detection, DetectionPostProcess, get_variant

if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy as np
    from numpy.typing import NDArray

    from irisx.config import Settings
    from irisx.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


class PipelineState(StrEnum):
    IDLE = "idle"
    DETECTION_RUN = "detection_run"
    LANDMARK_RUN = "landmark_run"
    IRIS_RUN = "iris_run"
    DONE = "done"


@dataclass(frozen=True)
class EyeResult:
    """Landmarks of one eye in original image pixels."""

    roi: Rect = field(default_factory=Rect)
    contour: list[Point] = field(default_factory=list)
    iris: list[Point] = field(default_factory=list)


@dataclass(frozen=True)
class PipelineResult:
    """Snapshot of everything one pipeline run produced."""

    state: PipelineState
    detection: Detection
    face_roi: Rect
    face_landmarks: list[Point]
    left_eye: EyeResult
    right_eye: EyeResult

    @property
    def face_found(self) -> bool:
        return not self.face_roi.empty


class IrisPipeline:
    """Chains the face detector, face landmarker and iris landmarker."""

    def __init__(self, detector: FaceDetector, landmarker: FaceLandmarker, iris: IrisLandmarker) -> None:
        self._detector = detector
        self._landmarker = landmarker
        self._iris = iris
        self._image: NDArray[np.uint8] | None = None
        self._state = PipelineState.IDLE
        self._iris_ran = False

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def original_image(self) -> NDArray[np.uint8] | None:
        return self._image

    @property
    def detection(self) -> Detection:
        return self._detector.detection

    @property
    def face_roi(self) -> Rect:
        return self._detector.face_roi

    def load_image(self, image: NDArray[np.uint8]) -> None:
        """Keep ``image`` as the original frame for the next run."""
        self._image = image
        self._state = PipelineState.IDLE

    def run_inference(self, with_iris: bool = True, parallel: bool = True) -> PipelineState:
        """Run every stage on the loaded frame.

        Running again without a new ``load_image`` re-executes inference on the
        same frame.

        Raises:
            RuntimeError: If no image has been loaded.
        """
        if self._image is None:
            raise RuntimeError("No image loaded; call load_image() first")
        image = self._image
        self._iris_ran = False

        self._state = PipelineState.DETECTION_RUN
        roi = self._detector.detect(image)
        if roi.empty:
            self._landmarker.reset()
            self._iris.reset()
            self._state = PipelineState.DONE
            logger.debug("No face detected; skipping landmark stages")
            return self._state

        self._state = PipelineState.LANDMARK_RUN
        self._landmarker.run(image, roi)

        if with_iris:
            self._state = PipelineState.IRIS_RUN
            self._iris.run(image, self._landmarker, parallel=parallel)
            self._iris_ran = True
        else:
            self._iris.reset()

        self._state = PipelineState.DONE
        return self._state

    # -- Queries ------------------------------------------------------------

    def get_face_landmark_at(self, index: int) -> Point:
        if self.face_roi.empty:
            return Point()
        return self._landmarker.landmark_at(index)

    def get_all_face_landmarks(self) -> list[Point]:
        if self.face_roi.empty:
            return []
        return self._landmarker.all_landmarks()

    def get_eye_landmark_at(self, index: int, left: bool, iris: bool) -> Point:
        if self.face_roi.empty or not self._iris_ran:
            return Point()
        return self._iris.eye_landmark_at(index, left, iris)

    def get_all_eye_landmarks(self, left: bool, iris: bool) -> list[Point]:
        if self.face_roi.empty or not self._iris_ran:
            return []
        return self._iris.all_eye_landmarks(left, iris)

    def get_eye_roi(self, left: bool) -> Rect:
        if self.face_roi.empty or not self._iris_ran:
            return Rect()
        return self._iris.eye_roi(left)

    def result(self) -> PipelineResult:
        """Collect the current results into one immutable snapshot."""
        if self._state != PipelineState.DONE or self.face_roi.empty:
            return PipelineResult(
                state=self._state,
                detection=self.detection if self._state == PipelineState.DONE else NO_DETECTION,
                face_roi=Rect(),
                face_landmarks=[],
                left_eye=EyeResult(),
                right_eye=EyeResult(),
            )

        return PipelineResult(
            state=self._state,
            detection=self.detection,
            face_roi=self.face_roi,
            face_landmarks=self.get_all_face_landmarks(),
            left_eye=self._eye_result(left=True),
            right_eye=self._eye_result(left=False),
        )

    def analyze(self, image: NDArray[np.uint8], with_iris: bool = True) -> PipelineResult:
        """Load ``image``, run every stage and return the snapshot."""
        self.load_image(image)
        self.run_inference(with_iris=with_iris)
        return self.result()

    def close(self) -> None:
        self._iris.close()

    def _eye_result(self, left: bool) -> EyeResult:
        return EyeResult(
            roi=self.get_eye_roi(left),
            contour=self.get_all_eye_landmarks(left, iris=False),
            iris=self.get_all_eye_landmarks(left, iris=True),
        )


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def build_postprocess(settings: Settings) -> DetectionPostProcess:
    """Create the detector post-processor described by ``settings``.

    Raises:
        KeyError: If the detector variant is unknown.
        FileNotFoundError: If ``anchors_file`` is set but missing.
        ValueError: If the anchor table does not match the detector.
    """
    variant = get_variant(settings.detector_variant)
    anchors = load_anchor_table(settings.anchors_file) if settings.anchors_file else None
    return DetectionPostProcess(
        variant,
        anchors=anchors,
        threshold=settings.min_score_threshold,
        sigmoid_scores=settings.sigmoid_scores,
    )


def build_pipeline(settings: Settings, model_manager: ModelManager) -> IrisPipeline:
    """Wire a pipeline with fresh engines over the manager's cached sessions."""
    postprocess = build_postprocess(settings)
    detector_model = postprocess.variant.model_name

    def engine(model_name: str, label: str) -> OnnxInferenceEngine:
        return OnnxInferenceEngine(model_manager.get_session(model_name), name=label)

    return IrisPipeline(
        detector=FaceDetector(
            engine(detector_model, detector_model),
            postprocess,
            scale_x=settings.face_scale_x,
            scale_y=settings.face_scale_y,
        ),
        landmarker=FaceLandmarker(engine("face_landmark", "face_landmark")),
        iris=IrisLandmarker(
            left_engine=engine("iris_landmark", "iris_landmark[left]"),
            right_engine=engine("iris_landmark", "iris_landmark[right]"),
        ),
    )


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------


class PipelinePool:
    """A fixed set of pipelines, each used by at most one caller at a time."""

    def __init__(self, factory: Callable[[], IrisPipeline], size: int) -> None:
        if size < 1:
            raise ValueError("Pipeline pool size must be at least 1")
        self._pipelines = [factory() for _ in range(size)]
        self._idle: queue.SimpleQueue[IrisPipeline] = queue.SimpleQueue()
        for pipeline in self._pipelines:
            self._idle.put(pipeline)
        logger.info("Created %d pipeline(s)", size)

    @classmethod
    def from_settings(cls, settings: Settings, model_manager: ModelManager) -> PipelinePool:
        return cls(lambda: build_pipeline(settings, model_manager), settings.max_concurrent)

    @property
    def size(self) -> int:
        return len(self._pipelines)

    def analyze(self, image: NDArray[np.uint8], with_iris: bool = True) -> PipelineResult:
        """Run ``image`` through an idle pipeline; blocks until one is free."""
        pipeline = self._idle.get()
        try:
            return pipeline.analyze(image, with_iris=with_iris)
        finally:
            self._idle.put(pipeline)

    def close(self) -> None:
        for pipeline in self._pipelines:
            pipeline.close()
