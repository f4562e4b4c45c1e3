"""Face detector post-processing: anchor decoding and best-detection selection.

Converts the regressor/classificator outputs of a BlazeFace-style detector into
a single normalized face box. There is no non-max suppression: only the
highest-scoring box above the threshold survives.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from irisx.ml.anchors import Anchor, AnchorOptions, generate_anchors
from irisx.ml.geometry import RectF

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

CLASS_ID: int = 0
NO_CLASS: int = -1
MIN_THRESHOLD: float = 0.75


# ---------------------------------------------------------------------------
# Detector variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DetectorVariant:
    """Output layout of one detector model."""

    name: str
    model_name: str
    detection_size: int
    num_boxes: int
    num_coords: int
    anchor_options: AnchorOptions


DETECTOR_VARIANTS: dict[str, DetectorVariant] = {
    "short": DetectorVariant(
        name="short",
        model_name="face_detection_short",
        detection_size=128,
        num_boxes=896,
        num_coords=16,
        anchor_options=AnchorOptions(layers=((16, 2), (8, 6))),
    ),
    "full": DetectorVariant(
        name="full",
        model_name="face_detection_full",
        detection_size=192,
        num_boxes=2944,
        num_coords=18,
        anchor_options=AnchorOptions(layers=((32, 2), (16, 2), (8, 6))),
    ),
}


def get_variant(name: str) -> DetectorVariant:
    try:
        return DETECTOR_VARIANTS[name]
    except KeyError:
        raise KeyError(f"Unknown detector variant: {name}") from None


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Detection:
    """Best detection of a frame; ``class_id == -1`` means nothing was found."""

    score: float = 0.0
    class_id: int = NO_CLASS
    region: RectF = field(default_factory=RectF)

    @property
    def found(self) -> bool:
        return self.class_id != NO_CLASS


NO_DETECTION = Detection()


class DetectionPostProcess:
    """Decodes raw detector boxes against the variant's anchors."""

    def __init__(
        self,
        variant: DetectorVariant,
        anchors: Sequence[Anchor] | None = None,
        threshold: float = MIN_THRESHOLD,
        class_id: int = CLASS_ID,
        sigmoid_scores: bool = False,
    ) -> None:
        """Create a post-processor.

        Args:
            variant: Detector layout (box count, coordinates per box, input size).
            anchors: Precomputed anchors, e.g. from an anchor table. Generated
                from ``variant.anchor_options`` when omitted.
            threshold: Minimum score a box must strictly exceed.
            class_id: Class id reported for a found face.
            sigmoid_scores: Apply the logistic function to raw scores first.

        Raises:
            ValueError: If the anchor count does not match ``variant.num_boxes``.
        """
        self._variant = variant
        self._anchors = list(anchors) if anchors is not None else generate_anchors(variant.anchor_options)
        self._threshold = threshold
        self._class_id = class_id
        self._sigmoid_scores = sigmoid_scores

        if len(self._anchors) != variant.num_boxes:
            raise ValueError(
                f"Detector '{variant.name}' expects {variant.num_boxes} anchors, got {len(self._anchors)}"
            )

    @property
    def variant(self) -> DetectorVariant:
        return self._variant

    @property
    def anchors(self) -> list[Anchor]:
        return self._anchors

    @property
    def threshold(self) -> float:
        return self._threshold

    def decode_box(self, raw_boxes: Sequence[float], index: int) -> RectF:
        """Undo the anchor-relative encoding of box ``index``.

        Only the first four values of each box (cx, cy, w, h) are used; the
        remaining slots hold keypoints.
        """
        anchor = self._anchors[index]
        size = self._variant.detection_size
        offset = index * self._variant.num_coords

        cx = raw_boxes[offset] / size * anchor.width + anchor.x_center
        cy = raw_boxes[offset + 1] / size * anchor.height + anchor.y_center
        w = raw_boxes[offset + 2] / size * anchor.width
        h = raw_boxes[offset + 3] / size * anchor.height

        return RectF(float(cx - w / 2), float(cy - h / 2), float(w), float(h))

    def highest_score_detection(self, raw_boxes: Sequence[float], scores: Sequence[float]) -> Detection:
        """Return the single best detection, or ``NO_DETECTION``.

        Ties keep the first box seen: a later box must be strictly better.

        Raises:
            ValueError: If the raw arrays are shorter than the variant requires.
        """
        num_boxes = self._variant.num_boxes
        if len(scores) < num_boxes:
            raise ValueError(f"Expected at least {num_boxes} scores, got {len(scores)}")
        if len(raw_boxes) < num_boxes * self._variant.num_coords:
            raise ValueError(
                f"Expected at least {num_boxes * self._variant.num_coords} box values, got {len(raw_boxes)}"
            )

        detection = NO_DETECTION
        for i in range(num_boxes):
            score = float(scores[i])
            if self._sigmoid_scores:
                score = _sigmoid(score)
            if score > max(self._threshold, detection.score):
                detection = Detection(score=score, class_id=self._class_id, region=self.decode_box(raw_boxes, i))

        if detection.found:
            logger.debug("Best detection score=%.3f region=%s", detection.score, detection.region)
        return detection


def _sigmoid(x: float) -> float:
    # Clamp to keep exp() in range for extreme logits.
    x = max(min(x, 100.0), -100.0)
    return 1.0 / (1.0 + math.exp(-x))
