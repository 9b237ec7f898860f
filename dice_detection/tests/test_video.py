from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
import pytest

from dice_detection.app.utils.tensors import scoped_tensors
from dice_detection.app.utils.video import decode_image_frame, load_image_frame, to_square_frame


def test_to_square_frame_center_crops_resizes_and_converts() -> None:
    image = np.zeros((40, 60, 3), dtype=np.uint8)
    image[:, :, 0] = 255  # pure blue in BGR

    frame = to_square_frame(image, 32)

    assert frame.shape == (32, 32, 3)
    assert np.all(frame[:, :, 2] == 255)
    assert np.all(frame[:, :, 0] == 0)


def test_to_square_frame_center_crop_offsets() -> None:
    image = np.zeros((10, 20, 3), dtype=np.uint8)
    image[:, 5:15] = 255
    frame = to_square_frame(image, 10)
    assert np.all(frame == 255)


def test_to_square_frame_accepts_grayscale() -> None:
    frame = to_square_frame(np.full((16, 16), 30, dtype=np.uint8), 16)
    assert frame.shape == (16, 16, 3)


def test_decode_image_frame_round_trips_png() -> None:
    image = np.zeros((20, 20, 3), dtype=np.uint8)
    image[:, :] = (0, 0, 255)  # red in BGR
    ok, encoded = cv2.imencode(".png", image)
    assert ok

    frame = decode_image_frame(encoded.tobytes(), 20)

    assert frame.shape == (20, 20, 3)
    assert tuple(frame[0, 0]) == (255, 0, 0)


def test_decode_image_frame_rejects_garbage() -> None:
    with pytest.raises(RuntimeError):
        decode_image_frame(b"not an image", 16)
    with pytest.raises(RuntimeError):
        decode_image_frame(b"", 16)


def test_load_image_frame_missing_file(tmp_path: Path) -> None:
    with pytest.raises(RuntimeError):
        load_image_frame(tmp_path / "missing.jpg", 16)


def test_scoped_tensors_release_on_error() -> None:
    with pytest.raises(ValueError):
        with scoped_tensors() as scope:
            scope.track(np.zeros(4))
            assert scope.live_count == 1
            raise ValueError("boom")
    assert scope.released
    assert scope.live_count == 0
    with pytest.raises(RuntimeError):
        scope.track(np.zeros(1))
