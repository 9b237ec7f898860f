from typing import Dict, Iterable

from dice_turns.core.models import ClassifierResult


class RollAggregator:
    """Compute roll totals from verified or predicted face values."""

    def total(self, results: Iterable[ClassifierResult]) -> int:
        return sum(result.value for result in results)

    def face_counts(self, results: Iterable[ClassifierResult]) -> Dict[int, int]:
        counts = {face: 0 for face in range(1, 7)}
        for result in results:
            counts[result.value] += 1
        return counts
