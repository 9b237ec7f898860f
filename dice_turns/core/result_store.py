from typing import Iterable, Iterator, List

from dice_turns.core.models import ClassifierResult


class ResultStore:
    """Correctable per-die results for the current capture, keyed by detection index.

    Every slot is created carrying a prediction. Slots change only by whole
    replacement, so writing one index never touches another.
    """

    def __init__(self, results: Iterable[ClassifierResult] = ()) -> None:
        self._slots: List[ClassifierResult] = [ClassifierResult.model_validate(result) for result in results]

    @classmethod
    def from_predictions(cls, predictions: Iterable[int]) -> "ResultStore":
        return cls(ClassifierResult(predicted=value) for value in predictions)

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[ClassifierResult]:
        return iter(list(self._slots))

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._slots):
            raise IndexError(f"Slot {index} is outside the current {len(self._slots)} detections")

    def get(self, index: int) -> ClassifierResult:
        self._check_index(index)
        return self._slots[index]

    def results(self) -> List[ClassifierResult]:
        return list(self._slots)

    def set_result(self, index: int, result: ClassifierResult) -> ClassifierResult:
        self._check_index(index)
        self._slots[index] = ClassifierResult.model_validate(result)
        return self._slots[index]

    def confirm(self, index: int) -> ClassifierResult:
        current = self.get(index)
        return self.set_result(index, ClassifierResult(predicted=current.predicted, actual=current.predicted))

    def correct(self, index: int, value: int) -> ClassifierResult:
        current = self.get(index)
        return self.set_result(index, ClassifierResult(predicted=current.predicted, actual=value))

    def cycle(self, index: int) -> ClassifierResult:
        """Step the slot to the next face, wrapping 6 back to 1."""

        current = self.get(index)
        return self.correct(index, current.value % 6 + 1)

    def reset(self, index: int) -> ClassifierResult:
        current = self.get(index)
        return self.set_result(index, ClassifierResult(predicted=current.predicted))

    def clear(self) -> None:
        self._slots.clear()
