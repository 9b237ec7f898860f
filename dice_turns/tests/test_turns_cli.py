from pathlib import Path
from typing import List

import cv2
import numpy as np

from dice_detection.app.config.settings import DetectionSettings
from dice_detection.app.services.model_loader import DetectionOutputLayout, LoadedModels, ModelRegistry
from dice_detection.app.services.pipeline import CapturePipeline
from dice_turns.app import cli
from dice_turns.services.roll_service import RollService


class StubModel:
    def __init__(self, outputs: List[np.ndarray]) -> None:
        self.outputs = outputs
        self.input_dtype = np.dtype(np.int32)

    def output_shapes(self):
        return [tuple(output.shape) for output in self.outputs]

    def predict(self, batch: np.ndarray) -> List[np.ndarray]:
        return [output.copy() for output in self.outputs]


def build_stub_service(_settings=None) -> RollService:
    detection = StubModel(
        [
            np.array([[0.9, 0.7]], dtype=np.float32),
            np.array([[[0.1, 0.1, 0.3, 0.3], [0.5, 0.5, 0.7, 0.7]]], dtype=np.float32),
            np.array([2], dtype=np.float32),
            np.zeros((1, 2), dtype=np.float32),
        ]
    )
    classification = StubModel([np.array([[0.0, 0.0, 0.0, 0.0, 1.0, 0.0]], dtype=np.float32)])
    registry = ModelRegistry()
    registry.apply(LoadedModels(detection, classification, DetectionOutputLayout(scores=0, boxes=1, count=2)))
    settings = DetectionSettings(frame_size=64, detection_input_size=32, classifier_input_size=32)
    return RollService(CapturePipeline.from_settings(registry, settings))


def write_image(path: Path) -> Path:
    cv2.imwrite(str(path), np.full((64, 64, 3), 100, dtype=np.uint8))
    return path


def test_apply_command_variants() -> None:
    service = build_stub_service()
    service.capture(np.zeros((64, 64, 3), dtype=np.uint8))

    assert cli.apply_command(service, "0 6")
    assert cli.apply_command(service, "c 1")
    assert service.total() == 6 + 3
    assert cli.apply_command(service, "n 1")
    assert service.total() == 6 + 4
    assert not cli.apply_command(service, "5 2")
    assert not cli.apply_command(service, "0 9")
    assert not cli.apply_command(service, "what")


def test_review_capture_stops_on_blank_line() -> None:
    service = build_stub_service()
    service.capture(np.zeros((64, 64, 3), dtype=np.uint8))
    lines = iter(["0 1", "1 1", ""])

    cli.review_capture(service, read_line=lambda _prompt: next(lines))

    assert service.total() == 2


def test_main_records_one_turn_per_image(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "_build_service", build_stub_service)
    monkeypatch.setattr(cli, "setup_logging", lambda settings, level=None: None)
    first = write_image(tmp_path / "first.png")
    second = write_image(tmp_path / "second.png")

    exit_code = cli.main([str(first), str(tmp_path / "missing.png"), str(second)])

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "[Roll 01] Total: 6" in output
    assert "[Roll 02] Total: 6" in output
    assert "  Faces: 3x2" in output
    assert "History entries: 2" in output
    assert "\"roll_number\": 2" in output
