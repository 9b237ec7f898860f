from datetime import datetime
from enum import Enum
from typing import Annotated, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

FaceValue = Annotated[int, Field(ge=1, le=6, strict=True)]


class SlotState(str, Enum):
    PREDICTED = "predicted"
    CONFIRMED = "confirmed"
    CORRECTED = "corrected"


class ClassifierResult(BaseModel):
    """One die's reading: the model's guess and, once verified, the human's answer."""

    model_config = ConfigDict(frozen=True)

    predicted: FaceValue
    actual: Optional[FaceValue] = None

    @property
    def value(self) -> int:
        return self.actual if self.actual is not None else self.predicted

    @property
    def state(self) -> SlotState:
        if self.actual is None:
            return SlotState.PREDICTED
        if self.actual == self.predicted:
            return SlotState.CONFIRMED
        return SlotState.CORRECTED


class Turn(BaseModel):
    model_config = ConfigDict(frozen=True)

    roll_number: int = Field(ge=1)
    total: int = Field(ge=0)
    dice: Tuple[ClassifierResult, ...] = ()
    committed_at: datetime


class CorrectionRequest(BaseModel):
    value: FaceValue
