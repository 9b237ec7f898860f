"""Crop detected dice out of the captured frame."""
from __future__ import annotations

from typing import Optional

import numpy as np

from ..models import BoundingBox
from ..utils.geometry import box_to_pixels

BACKGROUND_VALUE = 255


class RegionCropper:
    """Extracts a box from the frame and pads it onto a white square canvas."""

    def __init__(self, canvas_size: Optional[int] = None) -> None:
        self.canvas_size = canvas_size

    def extract(self, frame: np.ndarray, box: BoundingBox) -> np.ndarray:
        height, width = frame.shape[:2]
        x, y, w, h = box_to_pixels(box, width, height)
        return frame[y : y + h, x : x + w]

    def crop(self, frame: np.ndarray, box: BoundingBox) -> np.ndarray:
        """Return a square canvas with the box contents pasted at the origin."""

        region = self.extract(frame, box)
        height, width = frame.shape[:2]
        side = self.canvas_size or max(height, width)
        canvas = np.full((side, side) + frame.shape[2:], BACKGROUND_VALUE, dtype=frame.dtype)
        h = min(region.shape[0], side)
        w = min(region.shape[1], side)
        canvas[:h, :w] = region[:h, :w]
        return canvas
