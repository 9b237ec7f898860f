"""Frame source utilities producing square RGB frames."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Union

import cv2
import numpy as np

LOGGER = logging.getLogger(__name__)


def to_square_frame(image: np.ndarray, size: int) -> np.ndarray:
    """Center-crop a BGR image to a square, resize it to ``size`` and convert to RGB."""

    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    elif image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    height, width = image.shape[:2]
    side = min(height, width)
    top = (height - side) // 2
    left = (width - side) // 2
    square = image[top : top + side, left : left + side]
    if side != size:
        square = cv2.resize(square, (size, size), interpolation=cv2.INTER_LINEAR)
    return cv2.cvtColor(square, cv2.COLOR_BGR2RGB)


def load_image_frame(path: Path, size: int) -> np.ndarray:
    """Read an image file from disk as a square frame."""

    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        raise RuntimeError(f"Unable to read image: {path}")
    return to_square_frame(image, size)


def decode_image_frame(data: bytes, size: int) -> np.ndarray:
    """Decode encoded image bytes (JPEG, PNG, ...) into a square frame."""

    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR) if buffer.size else None
    if image is None:
        raise RuntimeError("Unable to decode image data")
    return to_square_frame(image, size)


def open_video_source(source: Union[int, str]) -> cv2.VideoCapture:
    """Open a video capture object from an integer index or file path."""

    capture = cv2.VideoCapture(source)
    if not capture.isOpened():
        raise RuntimeError(f"Unable to open video source: {source}")
    LOGGER.info("Video source %s opened successfully", source)
    return capture


@contextmanager
def managed_capture(source: Union[int, str]) -> Generator[cv2.VideoCapture, None, None]:
    """Context manager ensuring capture release."""

    capture = open_video_source(source)
    try:
        yield capture
    finally:
        LOGGER.info("Releasing video source")
        capture.release()


def grab_frame(capture: cv2.VideoCapture, size: int) -> np.ndarray:
    """Read the next frame from an open capture as a square frame."""

    success, frame = capture.read()
    if not success:
        raise RuntimeError("Video source returned no frame")
    return to_square_frame(frame, size)
