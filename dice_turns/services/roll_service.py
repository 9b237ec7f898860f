import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import numpy as np

from dice_detection.app.models import DetectionResult
from dice_detection.app.services.model_loader import ModelNotReadyError
from dice_detection.app.services.pipeline import CapturePipeline
from dice_turns.core.aggregator import RollAggregator
from dice_turns.core.models import ClassifierResult, Turn
from dice_turns.core.result_store import ResultStore
from dice_turns.core.turn_history import TurnHistory


logger = logging.getLogger(__name__)


@dataclass
class CaptureSession:
    """Detections of one capture and the correctable results keyed to them."""

    detections: List[DetectionResult]
    store: ResultStore
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RollService:
    """Coordinate capture, corrections, totals and the turn history."""

    def __init__(
        self,
        pipeline: CapturePipeline,
        history: Optional[TurnHistory] = None,
        aggregator: Optional[RollAggregator] = None,
    ) -> None:
        self.pipeline = pipeline
        self.aggregator = aggregator or RollAggregator()
        self.turns = history if history is not None else TurnHistory(self.aggregator)
        self._session: Optional[CaptureSession] = None
        self._lock = threading.RLock()
        self._inference_lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self.pipeline.ready

    def capture(self, frame: np.ndarray) -> Dict[str, Any]:
        """Run the pipeline on ``frame`` and make it the current capture.

        Inference runs under its own lock; the session lock is only taken to
        swap in the new results. Returns the snapshot of the new capture.
        """

        if not self.pipeline.ready:
            raise ModelNotReadyError("Capture requested before models finished loading")
        with self._inference_lock:
            result = self.pipeline.run(frame)
        with self._lock:
            if self._session is not None and len(self._session.store):
                logger.warning("Replacing uncommitted capture with %d dice", len(self._session.store))
            self._session = CaptureSession(
                detections=list(result.detections),
                store=ResultStore.from_predictions(result.predictions),
            )
            return self.snapshot()

    def has_capture(self) -> bool:
        with self._lock:
            return self._session is not None

    def dice_count(self) -> int:
        with self._lock:
            return len(self._session.store) if self._session else 0

    def _store(self) -> ResultStore:
        if self._session is None:
            raise IndexError("No capture in progress")
        return self._session.store

    def confirm(self, index: int) -> ClassifierResult:
        with self._lock:
            return self._store().confirm(index)

    def correct(self, index: int, value: int) -> ClassifierResult:
        with self._lock:
            return self._store().correct(index, value)

    def cycle(self, index: int) -> ClassifierResult:
        with self._lock:
            return self._store().cycle(index)

    def reset(self, index: int) -> ClassifierResult:
        with self._lock:
            return self._store().reset(index)

    def total(self) -> int:
        with self._lock:
            if self._session is None:
                return 0
            return self.aggregator.total(self._session.store)

    def commit(self) -> Turn:
        """Record the current results as a turn and return to capture-ready state."""

        with self._lock:
            store = self._session.store if self._session else ResultStore()
            turn = self.turns.commit_turn(store)
            self._session = None
            return turn

    def history(self, limit: Optional[int] = None) -> List[Turn]:
        with self._lock:
            return self.turns.history(limit)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            session = self._session
            if session is None:
                return {"captured_at": None, "dice": [], "total": 0, "turns_recorded": len(self.turns)}
            dice = []
            for index, (detection, result) in enumerate(zip(session.detections, session.store)):
                dice.append(
                    {
                        "index": index,
                        "bounding_box": detection.bounding_box.to_dict(),
                        "score": detection.score,
                        "predicted": result.predicted,
                        "actual": result.actual,
                        "value": result.value,
                        "state": result.state.value,
                    }
                )
            return {
                "captured_at": session.captured_at,
                "dice": dice,
                "total": self.aggregator.total(session.store),
                "turns_recorded": len(self.turns),
            }
