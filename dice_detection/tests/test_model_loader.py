from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pytest
from pydantic import ValidationError

from dice_detection.app.config.settings import DetectionSettings
from dice_detection.app.services.model_loader import (
    CancellationToken,
    DetectionOutputLayout,
    ModelContractError,
    ModelLoader,
    ModelNotReadyError,
    ModelRegistry,
    build_models,
    validate_classifier_outputs,
)

SSD_SHAPES = [(1, 10), (1, 10, 4), (1,), (1, 10)]


class ShapeOnlyModel:
    def __init__(self, shapes) -> None:
        self.shapes = [tuple(shape) for shape in shapes]
        self.input_dtype = np.dtype(np.int32)

    def output_shapes(self):
        return list(self.shapes)

    def predict(self, batch: np.ndarray) -> List[np.ndarray]:
        return [np.zeros(shape, dtype=np.float32) for shape in self.shapes]


def build_settings(tmp_path: Path, **overrides: object) -> DetectionSettings:
    return DetectionSettings(
        detection_model_path=tmp_path / "detection.tflite",
        classifier_model_path=tmp_path / "classifier.tflite",
        **overrides,
    )


def build_factory(models: Dict[str, ShapeOnlyModel], calls: Optional[List[str]] = None):
    def factory(path: Path, threads: Optional[int]) -> ShapeOnlyModel:
        if calls is not None:
            calls.append(path.name)
        return models[path.name]

    return factory


def default_models() -> Dict[str, ShapeOnlyModel]:
    return {
        "detection.tflite": ShapeOnlyModel(SSD_SHAPES),
        "classifier.tflite": ShapeOnlyModel([(1, 6)]),
    }


def test_layout_resolves_default_order() -> None:
    layout = DetectionOutputLayout.resolve(["scores", "boxes", "count", "classes"], SSD_SHAPES)
    assert layout == DetectionOutputLayout(scores=0, boxes=1, count=2)


def test_layout_resolves_custom_order() -> None:
    shapes = [(1, 10, 4), (1, 10), (1, 10), (1,)]
    layout = DetectionOutputLayout.resolve(["boxes", "classes", "scores", "count"], shapes)
    assert layout == DetectionOutputLayout(scores=2, boxes=0, count=3)


@pytest.mark.parametrize(
    "shapes",
    [
        [(1, 10), (1, 10, 3), (1,), (1, 10)],
        [(1, 10), (1, 10, 4), (1, 2), (1, 10)],
        [(1, 8), (1, 10, 4), (1,), (1, 10)],
        [(1, 10), (1, 10, 4)],
    ],
)
def test_layout_rejects_mismatched_outputs(shapes) -> None:
    with pytest.raises(ModelContractError):
        DetectionOutputLayout.resolve(["scores", "boxes", "count", "classes"], shapes)


def test_classifier_outputs_must_hold_six_scores() -> None:
    validate_classifier_outputs([(1, 6)], 6)
    with pytest.raises(ModelContractError):
        validate_classifier_outputs([(1, 5)], 6)
    with pytest.raises(ModelContractError):
        validate_classifier_outputs([], 6)


def test_registry_raises_until_models_applied(tmp_path: Path) -> None:
    registry = ModelRegistry()
    assert not registry.ready
    with pytest.raises(ModelNotReadyError):
        _ = registry.models

    models = build_models(build_settings(tmp_path), build_factory(default_models()))
    registry.apply(models)
    assert registry.ready
    assert registry.models is models


def test_build_models_validates_detection_contract(tmp_path: Path) -> None:
    models = default_models()
    models["detection.tflite"] = ShapeOnlyModel([(1, 10), (1, 10, 2), (1,), (1, 10)])
    with pytest.raises(ModelContractError):
        build_models(build_settings(tmp_path), build_factory(models))


def test_loader_applies_models(tmp_path: Path) -> None:
    registry = ModelRegistry()
    loader = ModelLoader(registry, build_settings(tmp_path), factory=build_factory(default_models()))

    models = asyncio.run(loader.load(CancellationToken()))

    assert models is not None
    assert registry.models is models
    assert models.layout == DetectionOutputLayout(scores=0, boxes=1, count=2)


def test_loader_discards_result_after_cancellation(tmp_path: Path) -> None:
    token = CancellationToken()
    calls: List[str] = []
    models = default_models()

    def cancelling_factory(path: Path, threads: Optional[int]) -> ShapeOnlyModel:
        calls.append(path.name)
        # teardown happens while the files are still loading
        token.cancel()
        return models[path.name]

    registry = ModelRegistry()
    loader = ModelLoader(registry, build_settings(tmp_path), factory=cancelling_factory)

    assert asyncio.run(loader.load(token)) is None
    assert calls
    assert not registry.ready


def test_loader_start_runs_once(tmp_path: Path) -> None:
    calls: List[str] = []
    registry = ModelRegistry()
    loader = ModelLoader(registry, build_settings(tmp_path), factory=build_factory(default_models(), calls))

    async def scenario():
        token = CancellationToken()
        first = loader.start(token)
        second = loader.start(token)
        assert first is second
        return await first

    assert asyncio.run(scenario()) is not None
    assert sorted(calls) == ["classifier.tflite", "detection.tflite"]


def test_loader_start_replaces_cancelled_task(tmp_path: Path) -> None:
    registry = ModelRegistry()
    loader = ModelLoader(registry, build_settings(tmp_path), factory=build_factory(default_models()))

    async def shut_down_early():
        token = CancellationToken()
        task = loader.start(token)
        token.cancel()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return task

    async def start_again():
        task = loader.start(CancellationToken())
        await task
        return task

    cancelled = asyncio.run(shut_down_early())
    assert cancelled.cancelled()
    assert not registry.ready

    restarted = asyncio.run(start_again())
    assert restarted is not cancelled
    assert registry.ready


def test_load_blocking_applies_models(tmp_path: Path) -> None:
    registry = ModelRegistry()
    ModelLoader(registry, build_settings(tmp_path), factory=build_factory(default_models())).load_blocking()
    assert registry.ready


def test_settings_validate_labels_and_output_order(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        build_settings(tmp_path, classifier_labels=[1, 2, 3, 4, 5, 5])
    with pytest.raises(ValidationError):
        build_settings(tmp_path, detection_output_order=["scores", "boxes"])
    with pytest.raises(ValidationError):
        build_settings(tmp_path, log_format="xml")


def test_settings_read_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DICE_FRAME_SIZE", "640")
    monkeypatch.setenv("DICE_DETECTION_MODEL_PATH", "~/models/det.tflite")
    settings = DetectionSettings()
    assert settings.frame_size == 640
    assert settings.detection_model_path == Path("~/models/det.tflite").expanduser()
