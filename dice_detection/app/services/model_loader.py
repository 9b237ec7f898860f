"""Model loading, output contract validation and process-wide model state."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from ..config.settings import DetectionSettings

LOGGER = logging.getLogger(__name__)

Shape = Tuple[int, ...]


class ModelNotReadyError(RuntimeError):
    """Raised when inference is requested before the models are loaded."""


class ModelContractError(ValueError):
    """Raised when a model's inputs or outputs do not match the expected layout."""


class InferenceModel(Protocol):
    """Opaque inference model consumed by the detector and the classifier."""

    input_dtype: np.dtype

    def output_shapes(self) -> List[Shape]:
        ...

    def predict(self, batch: np.ndarray) -> List[np.ndarray]:
        ...


class LiteRTModel:
    """Adapter running a ``.tflite`` file through the LiteRT interpreter."""

    def __init__(self, model_path: Path, num_threads: Optional[int] = None) -> None:
        try:  # pragma: no cover - import guarded for environments without LiteRT
            from ai_edge_litert.interpreter import Interpreter
        except ImportError as exc:  # pragma: no cover
            raise ImportError(
                "ai-edge-litert is required to run .tflite models. Install it via "
                "`pip install -e .[litert]`."
            ) from exc

        if not model_path.exists():
            raise FileNotFoundError(f"Model file not found: {model_path}")
        LOGGER.info("Loading LiteRT model from %s", model_path)
        self.model_path = model_path
        self._interpreter = Interpreter(model_path=str(model_path), num_threads=num_threads)
        self._interpreter.allocate_tensors()
        self._input = self._interpreter.get_input_details()[0]
        self._outputs = self._interpreter.get_output_details()
        self.input_dtype = np.dtype(self._input["dtype"])

    def output_shapes(self) -> List[Shape]:
        return [tuple(int(dim) for dim in detail["shape"]) for detail in self._outputs]

    def predict(self, batch: np.ndarray) -> List[np.ndarray]:
        expected = tuple(int(dim) for dim in self._input["shape"])
        if tuple(batch.shape) != expected:
            self._interpreter.resize_tensor_input(self._input["index"], list(batch.shape))
            self._interpreter.allocate_tensors()
        self._interpreter.set_tensor(self._input["index"], batch)
        self._interpreter.invoke()
        # get_tensor copies, so nothing returned here aliases interpreter memory
        return [self._interpreter.get_tensor(detail["index"]) for detail in self._outputs]


def _size(shape: Shape) -> int:
    return int(np.prod(shape)) if shape else 1


@dataclass(frozen=True)
class DetectionOutputLayout:
    """Positions of the score, box and count tensors in the detection outputs."""

    scores: int
    boxes: int
    count: int

    @classmethod
    def resolve(cls, order: Sequence[str], shapes: Sequence[Shape]) -> "DetectionOutputLayout":
        """Map output names to positions and check the shapes agree with them."""

        names = [name.lower() for name in order]
        try:
            layout = cls(scores=names.index("scores"), boxes=names.index("boxes"), count=names.index("count"))
        except ValueError as exc:
            raise ModelContractError(f"Output order {list(order)} lacks scores, boxes or count") from exc

        needed = max(layout.scores, layout.boxes, layout.count) + 1
        if len(shapes) < needed:
            raise ModelContractError(f"Detection model exposes {len(shapes)} outputs, expected at least {needed}")

        boxes_shape = shapes[layout.boxes]
        if not boxes_shape or boxes_shape[-1] != 4:
            raise ModelContractError(f"Boxes output must end in a dimension of 4, got {boxes_shape}")
        if _size(shapes[layout.count]) != 1:
            raise ModelContractError(f"Count output must hold a single value, got {shapes[layout.count]}")
        box_count = _size(boxes_shape) // 4
        if _size(shapes[layout.scores]) != box_count:
            raise ModelContractError(
                f"Scores output {shapes[layout.scores]} does not match {box_count} boxes"
            )
        return layout


def validate_classifier_outputs(shapes: Sequence[Shape], class_count: int) -> None:
    if not shapes:
        raise ModelContractError("Classifier model exposes no outputs")
    if _size(shapes[0]) != class_count:
        raise ModelContractError(f"Classifier output {shapes[0]} does not hold {class_count} scores")


@dataclass(frozen=True)
class LoadedModels:
    detection: InferenceModel
    classification: InferenceModel
    layout: DetectionOutputLayout


class ModelRegistry:
    """Holds the loaded models once they are ready for inference."""

    def __init__(self) -> None:
        self._models: Optional[LoadedModels] = None

    @property
    def ready(self) -> bool:
        return self._models is not None

    @property
    def models(self) -> LoadedModels:
        if self._models is None:
            raise ModelNotReadyError("Models are not loaded yet")
        return self._models

    def apply(self, models: LoadedModels) -> None:
        self._models = models
        LOGGER.info("Models applied to registry")


class CancellationToken:
    """Flag checked before a finished load is applied."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


ModelFactory = Callable[[Path, Optional[int]], InferenceModel]


def build_models(settings: DetectionSettings, factory: ModelFactory = LiteRTModel) -> LoadedModels:
    """Load both models and validate their output contracts."""

    classification = factory(settings.classifier_model_path, settings.model_threads)
    detection = factory(settings.detection_model_path, settings.model_threads)
    layout = DetectionOutputLayout.resolve(settings.detection_output_order, detection.output_shapes())
    validate_classifier_outputs(classification.output_shapes(), len(settings.classifier_labels))
    return LoadedModels(detection=detection, classification=classification, layout=layout)


class ModelLoader:
    """Loads the models in the background, once per process."""

    def __init__(
        self,
        registry: ModelRegistry,
        settings: DetectionSettings,
        factory: ModelFactory = LiteRTModel,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.factory = factory
        self._task: Optional[asyncio.Task] = None

    async def load(self, token: CancellationToken) -> Optional[LoadedModels]:
        """Load and validate the models, applying them unless the token was cancelled."""

        models = await asyncio.to_thread(build_models, self.settings, self.factory)
        if token.cancelled:
            LOGGER.debug("Discarding models loaded after cancellation")
            return None
        self.registry.apply(models)
        return models

    def start(self, token: CancellationToken) -> asyncio.Task:
        """Schedule the load on the running loop; later calls return the same task.

        A task that was cancelled, e.g. by an earlier app shutdown, is replaced
        so a new token and loop get a fresh load.
        """

        if self._task is None or self._task.cancelled():
            LOGGER.info(
                "Starting model load (detection=%s, classifier=%s)",
                self.settings.detection_model_path,
                self.settings.classifier_model_path,
            )
            self._task = asyncio.get_running_loop().create_task(self.load(token))
        return self._task

    def load_blocking(self) -> LoadedModels:
        """Load synchronously for command line use."""

        models = build_models(self.settings, self.factory)
        self.registry.apply(models)
        return models
