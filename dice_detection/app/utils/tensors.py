"""Scoped ownership of intermediate inference buffers."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, List

import numpy as np

LOGGER = logging.getLogger(__name__)


class TensorScope:
    """Collects arrays allocated during one inference call."""

    def __init__(self) -> None:
        self._buffers: List[np.ndarray] = []
        self.released = False

    def track(self, array: np.ndarray) -> np.ndarray:
        if self.released:
            raise RuntimeError("Tensor scope already released")
        self._buffers.append(array)
        return array

    @property
    def live_count(self) -> int:
        return len(self._buffers)

    def release(self) -> None:
        count = len(self._buffers)
        self._buffers.clear()
        self.released = True
        LOGGER.debug("Released %d intermediate buffers", count)


@contextmanager
def scoped_tensors() -> Generator[TensorScope, None, None]:
    """Context manager ensuring tracked buffers are dropped on exit."""

    scope = TensorScope()
    try:
        yield scope
    finally:
        scope.release()
