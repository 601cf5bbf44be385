from __future__ import annotations

from typing import Any

from pydantic import PositiveInt, field_validator

from flashdeck.models.base import ApiModel, RequestModel
from flashdeck.models.flashcard import Flashcard, FlashcardSchedule


class ReviewCreate(RequestModel):
    flashcard_id: str
    quality: Any  # integer 0-5; type and range checked by the scheduler
    latency_ms: PositiveInt | None = None

    @field_validator("quality")
    @classmethod
    def _integral_float_to_int(cls, value: Any) -> Any:
        # JSON 4.0 is the integer 4; 4.5 passes through and is rejected downstream
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value


class ReviewEvent(ApiModel):
    """Audit record of one review submission. Written once, never updated."""

    user_id: str
    flashcard_id: str
    quality: int
    latency_ms: int | None
    created_at: str


class ReviewResult(ApiModel):
    id: str
    flashcard_id: str
    quality: int
    created_at: str
    flashcard: FlashcardSchedule


class ReviewQueue(ApiModel):
    data: list[Flashcard]
    total_due: int
