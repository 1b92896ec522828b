"""
Object detection: decode raw detector output and suppress duplicates.

The detector emits one row per prediction: center x, center y, width,
height (canvas pixels), then one confidence per class. A row may clear the
confidence floor for several classes and then yields several candidates.
"""

import logging
from collections.abc import Iterator, Mapping, Sequence

import numpy as np

from skinscreen.config import CLASS_NAMES, ScreeningConfig
from skinscreen.core.engine import InferenceEngine
from skinscreen.core.errors import SchemaMismatch
from skinscreen.core.geometry import LetterboxGeometry
from skinscreen.core.models import BoundingBox, DetectionCandidate, DetectionSet

logger = logging.getLogger(__name__)

BOX_PARAMS = 4


def decode_engine_output(output: np.ndarray, num_classes: int) -> np.ndarray:
    """
    Convert engine output [1, 4 + C, N] into prediction rows [N, 4 + C].

    Raises:
        SchemaMismatch: If the output does not have the expected layout
    """
    output = np.asarray(output)
    expected = BOX_PARAMS + num_classes
    if output.ndim != 3 or output.shape[0] != 1 or output.shape[1] != expected:
        raise SchemaMismatch(
            f"Expected detector output of shape [1, {expected}, N], got {list(output.shape)}"
        )
    return output[0].T


def iter_candidates(
    predictions: np.ndarray,
    confidence_floor: float,
    class_names: Mapping[int, str],
    geometry: LetterboxGeometry | None = None,
) -> Iterator[DetectionCandidate]:
    """
    Yield one candidate per (prediction, class) whose confidence clears the floor.

    Args:
        predictions: Array of shape [N, 4 + num_classes]
        confidence_floor: Minimum confidence, inclusive
        class_names: Class id -> label table
        geometry: Maps canvas boxes back to original pixels; None keeps canvas coordinates

    Raises:
        SchemaMismatch: If the second dimension is not 4 + num_classes
    """
    predictions = np.asarray(predictions, dtype=np.float64)
    num_classes = len(class_names)
    if predictions.ndim != 2 or predictions.shape[1] != BOX_PARAMS + num_classes:
        raise SchemaMismatch(
            f"Expected predictions of shape [N, {BOX_PARAMS + num_classes}], "
            f"got {list(predictions.shape)}"
        )

    scores = predictions[:, BOX_PARAMS:]
    # Row-major: prediction order first, then class order within a prediction
    hits = np.argwhere(scores >= confidence_floor)

    for row, class_id in hits:
        cx, cy, w, h = predictions[row, :BOX_PARAMS]
        box = BoundingBox.from_center(float(cx), float(cy), float(w), float(h))
        if geometry is not None:
            box = geometry.to_original(box)
        yield DetectionCandidate(
            class_id=int(class_id),
            class_name=class_names[int(class_id)],
            confidence=float(scores[row, class_id]),
            box=box,
        )


def decode_predictions(
    predictions: np.ndarray,
    confidence_floor: float,
    class_names: Mapping[int, str] = CLASS_NAMES,
    geometry: LetterboxGeometry | None = None,
) -> list[DetectionCandidate]:
    """Flat list of every candidate above the confidence floor."""
    return list(iter_candidates(predictions, confidence_floor, class_names, geometry))


def box_iou(a: BoundingBox, b: BoundingBox) -> float:
    """Intersection over union. Zero for disjoint or degenerate boxes."""
    x1 = max(a.x1, b.x1)
    y1 = max(a.y1, b.y1)
    x2 = min(a.x2, b.x2)
    y2 = min(a.y2, b.y2)

    if x2 <= x1 or y2 <= y1:
        return 0.0

    intersection = (x2 - x1) * (y2 - y1)
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return intersection / union


def non_max_suppression(
    candidates: Sequence[DetectionCandidate],
    iou_threshold: float,
) -> list[DetectionCandidate]:
    """
    Remove duplicate detections of the same object.

    Candidates are visited in descending confidence order (stable for ties).
    Each kept candidate suppresses every later candidate of the same class
    whose IoU with it is at least iou_threshold. Classes never suppress each
    other.

    Returns:
        Kept candidates in suppression order (highest confidence first)
    """
    ordered = sorted(candidates, key=lambda c: c.confidence, reverse=True)
    suppressed = [False] * len(ordered)
    kept: list[DetectionCandidate] = []

    for i, current in enumerate(ordered):
        if suppressed[i]:
            continue
        kept.append(current)

        for j in range(i + 1, len(ordered)):
            if suppressed[j]:
                continue
            other = ordered[j]
            if other.class_id != current.class_id:
                continue
            if box_iou(current.box, other.box) >= iou_threshold:
                suppressed[j] = True

    return kept


class ObjectDetector:
    """Run the detector on an image and return the de-duplicated detections."""

    def __init__(
        self,
        engine: InferenceEngine,
        config: ScreeningConfig | None = None,
        class_names: Mapping[int, str] = CLASS_NAMES,
    ):
        self.engine = engine
        self.config = config or ScreeningConfig()
        self.class_names = dict(class_names)

    def detect(self, image: np.ndarray, timeout: float | None = None) -> DetectionSet:
        """
        Detect exposed body parts in an image.

        Args:
            image: BGR image (OpenCV format)
            timeout: Seconds allowed for the inference call

        Returns:
            DetectionSet in original image coordinates
        """
        h, w = image.shape[:2]

        # Step 1: Fit the image onto the detector canvas
        geometry = LetterboxGeometry.fit(w, h, self.config.input_size, self.config.letterbox)
        blob = geometry.to_blob(image, self.config.padding_color)

        # Step 2: Inference (serialized by the engine)
        output = self.engine.infer(blob, timeout=timeout)

        # Step 3: Decode and suppress
        predictions = decode_engine_output(output, len(self.class_names))
        candidates = decode_predictions(
            predictions, self.config.confidence_floor, self.class_names, geometry
        )
        kept = non_max_suppression(candidates, self.config.iou_threshold)

        logger.debug(
            f"{len(predictions)} predictions -> {len(candidates)} candidates -> {len(kept)} detections"
        )
        return DetectionSet(tuple(kept))
