"""Geometry helpers for mapping normalized boxes onto pixel grids."""
from __future__ import annotations

from typing import Tuple

from ..models import BoundingBox

PixelRect = Tuple[int, int, int, int]


def box_to_pixels(box: BoundingBox, width: int, height: int) -> PixelRect:
    """Return ``(x, y, w, h)`` of a normalized box inside a ``width x height`` frame.

    Coordinates are truncated toward zero and the rectangle is clipped so it
    never extends past the frame edge.
    """

    x = int(box.xmin * width)
    y = int(box.ymin * height)
    w = int(box.width * width)
    h = int(box.height * height)
    x = min(max(x, 0), width)
    y = min(max(y, 0), height)
    w = max(0, min(w, width - x))
    h = max(0, min(h, height - y))
    return x, y, w, h


def box_corners(box: BoundingBox, width: int, height: int) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """Return top-left and bottom-right pixel corners for drawing."""

    x, y, w, h = box_to_pixels(box, width, height)
    return (x, y), (x + w, y + h)
