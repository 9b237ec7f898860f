"""Die face classification service wrapper."""
from __future__ import annotations

import logging
from typing import Sequence, Tuple

import cv2
import numpy as np

from ..utils.tensors import scoped_tensors
from .model_loader import ModelContractError, ModelRegistry

LOGGER = logging.getLogger(__name__)

# Output position -> face value, as trained ("five", "four", "one", "six", "three", "two").
DEFAULT_CLASS_LABELS: Tuple[int, ...] = (5, 4, 1, 6, 3, 2)


class DieClassifier:
    """Reads the face value of a single cropped die."""

    def __init__(
        self,
        registry: ModelRegistry,
        input_size: int = 224,
        labels: Sequence[int] = DEFAULT_CLASS_LABELS,
    ) -> None:
        self.registry = registry
        self.input_size = input_size
        self.labels: Tuple[int, ...] = tuple(labels)

    def decide(self, scores: np.ndarray) -> int:
        """Pick the label of the highest score; the first maximum wins ties."""

        flat = np.asarray(scores).reshape(-1)
        if flat.size != len(self.labels):
            raise ModelContractError(f"Expected {len(self.labels)} class scores, got {flat.size}")
        return self.labels[int(np.argmax(flat))]

    def classify(self, image: np.ndarray) -> int:
        model = self.registry.models.classification
        with scoped_tensors() as scope:
            resized = scope.track(
                cv2.resize(image, (self.input_size, self.input_size), interpolation=cv2.INTER_LINEAR)
            )
            batch = scope.track(np.expand_dims(resized, axis=0).astype(model.input_dtype))
            outputs = [scope.track(np.asarray(output)) for output in model.predict(batch)]
            predicted = self.decide(outputs[0])
        LOGGER.debug("Classified die as %d", predicted)
        return predicted
