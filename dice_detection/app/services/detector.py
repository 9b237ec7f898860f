"""Dice detection service wrapper."""
from __future__ import annotations

import logging
from typing import List, Sequence

import cv2
import numpy as np

from ..models import BoundingBox, DetectionResult
from ..utils.tensors import scoped_tensors
from .model_loader import ModelRegistry

LOGGER = logging.getLogger(__name__)

# Fixed, not configurable. Detections must score strictly above this value.
SCORE_THRESHOLD = 0.2


def decode_detections(
    scores: Sequence[float],
    boxes: Sequence[float],
    count: int,
    threshold: float = SCORE_THRESHOLD,
) -> List[DetectionResult]:
    """Turn flat model outputs into detection results in model order.

    ``boxes`` holds four values per detection in ``(ymin, xmin, ymax, xmax)``
    order. Overlapping boxes are all kept; no suppression is applied.
    """

    limit = min(int(count), len(scores), len(boxes) // 4)
    results: List[DetectionResult] = []
    for i in range(limit):
        score = float(scores[i])
        if not score > threshold:
            continue
        ymin, xmin, ymax, xmax = (float(np.clip(v, 0.0, 1.0)) for v in boxes[i * 4 : i * 4 + 4])
        box = BoundingBox(
            xmin=min(xmin, xmax),
            ymin=min(ymin, ymax),
            xmax=max(xmin, xmax),
            ymax=max(ymin, ymax),
        )
        results.append(DetectionResult(bounding_box=box, score=min(score, 1.0)))
    return results


class DiceDetector:
    """Runs the detection model on a downscaled copy of the frame."""

    def __init__(self, registry: ModelRegistry, input_size: int = 512) -> None:
        self.registry = registry
        self.input_size = input_size

    def detect(self, frame: np.ndarray) -> List[DetectionResult]:
        """Return the detections scoring above the threshold."""

        models = self.registry.models
        model = models.detection
        layout = models.layout
        with scoped_tensors() as scope:
            resized = scope.track(
                cv2.resize(frame, (self.input_size, self.input_size), interpolation=cv2.INTER_LINEAR)
            )
            batch = scope.track(np.expand_dims(resized, axis=0).astype(model.input_dtype))
            outputs = [scope.track(np.asarray(output)) for output in model.predict(batch)]
            scores = outputs[layout.scores].reshape(-1)
            boxes = outputs[layout.boxes].reshape(-1)
            count = int(outputs[layout.count].reshape(-1)[0])
            detections = decode_detections(scores.tolist(), boxes.tolist(), count)
        LOGGER.debug("Kept %d of %d raw detections", len(detections), count)
        return detections
