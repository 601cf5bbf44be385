from __future__ import annotations

from enum import Enum
from typing import Annotated

from pydantic import StringConstraints, model_validator

from flashdeck.models.base import ApiModel, RequestModel

CardText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]


class FlashcardSource(str, Enum):
    MANUAL = "manual"
    AI = "ai"
    AI_EDITED = "ai_edited"


class Flashcard(ApiModel):
    id: str
    user_id: str
    deck_id: str | None
    front: str
    back: str
    source: FlashcardSource
    ease_factor: float          # SM-2 ease, >= 1.3
    interval_days: int          # days until next review
    repetition: int             # consecutive passing reviews
    next_review_at: str | None  # ISO-8601 UTC; None = never reviewed
    created_at: str
    updated_at: str


class FlashcardList(ApiModel):
    items: list[Flashcard]
    total: int
    offset: int
    limit: int


class FlashcardCreate(RequestModel):
    front: CardText
    back: CardText
    deck_id: str | None = None
    source: FlashcardSource = FlashcardSource.MANUAL


class FlashcardUpdate(RequestModel):
    front: CardText | None = None
    back: CardText | None = None
    deck_id: str | None = None
    source: FlashcardSource | None = None

    @model_validator(mode="after")
    def _require_a_field(self) -> FlashcardUpdate:
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class FlashcardSchedule(ApiModel):
    id: str
    ease_factor: float
    interval_days: int
    repetition: int
    next_review_at: str | None
