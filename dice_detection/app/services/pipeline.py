"""Detection, crop and classification run as one capture cycle."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List

import numpy as np

from ..config.settings import DetectionSettings
from ..models import DetectionResult
from .classifier import DieClassifier
from .cropper import RegionCropper
from .detector import DiceDetector
from .model_loader import ModelRegistry

LOGGER = logging.getLogger(__name__)


@dataclass
class CaptureResult:
    detections: List[DetectionResult] = field(default_factory=list)
    predictions: List[int] = field(default_factory=list)
    latency_ms: float = 0.0


class CapturePipeline:
    """Sequential detect -> crop -> classify over one frame."""

    def __init__(
        self,
        registry: ModelRegistry,
        detector: DiceDetector,
        cropper: RegionCropper,
        classifier: DieClassifier,
    ) -> None:
        self.registry = registry
        self.detector = detector
        self.cropper = cropper
        self.classifier = classifier

    @classmethod
    def from_settings(cls, registry: ModelRegistry, settings: DetectionSettings) -> "CapturePipeline":
        return cls(
            registry,
            DiceDetector(registry, input_size=settings.detection_input_size),
            RegionCropper(),
            DieClassifier(registry, input_size=settings.classifier_input_size, labels=settings.classifier_labels),
        )

    @property
    def ready(self) -> bool:
        return self.registry.ready

    def run(self, frame: np.ndarray) -> CaptureResult:
        """Detect every die, then classify each crop in detection order."""

        start = time.perf_counter()
        detections = self.detector.detect(frame)
        predictions: List[int] = []
        for detection in detections:
            region = self.cropper.crop(frame, detection.bounding_box)
            predictions.append(self.classifier.classify(region))
        latency_ms = (time.perf_counter() - start) * 1000
        LOGGER.info("Capture cycle found %d dice in %.2f ms", len(detections), latency_ms)
        return CaptureResult(detections=detections, predictions=predictions, latency_ms=latency_ms)
