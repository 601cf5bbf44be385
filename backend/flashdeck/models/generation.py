from typing import Annotated

from pydantic import StringConstraints

from flashdeck.models.base import ApiModel, RequestModel

SourceText = Annotated[str, StringConstraints(min_length=1000, max_length=10000)]


class GenerateFlashcardsRequest(RequestModel):
    source_text: SourceText
    deck_id: str | None = None


class GeneratedFlashcard(ApiModel):
    front: str
    back: str


class GenerationResult(ApiModel):
    flashcards: list[GeneratedFlashcard]
