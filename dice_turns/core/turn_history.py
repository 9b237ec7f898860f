import logging
from datetime import datetime, timezone
from typing import List, Optional

from dice_turns.core.aggregator import RollAggregator
from dice_turns.core.models import Turn
from dice_turns.core.result_store import ResultStore

logger = logging.getLogger(__name__)


class TurnHistory:
    """Append-only ledger of committed turns, oldest first."""

    def __init__(self, aggregator: Optional[RollAggregator] = None) -> None:
        self.aggregator = aggregator or RollAggregator()
        self._turns: List[Turn] = []

    def __len__(self) -> int:
        return len(self._turns)

    def commit_turn(self, store: ResultStore, committed_at: Optional[datetime] = None) -> Turn:
        """Snapshot the store into a new turn, append it and clear the store."""

        dice = tuple(result.model_copy(deep=True) for result in store.results())
        turn = Turn(
            roll_number=len(self._turns) + 1,
            total=self.aggregator.total(dice),
            dice=dice,
            committed_at=committed_at or datetime.now(timezone.utc),
        )
        self._turns.append(turn)
        store.clear()
        logger.info("Committed roll #%d with %d dice, total %d", turn.roll_number, len(dice), turn.total)
        return turn

    def history(self, limit: Optional[int] = None) -> List[Turn]:
        if limit is None:
            return list(self._turns)
        if limit <= 0:
            return []
        return self._turns[-limit:]

    def latest(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None
