from typing import Annotated

from pydantic import StringConstraints

from flashdeck.models.base import ApiModel, RequestModel

DeckName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


class DeckCreate(RequestModel):
    name: DeckName


class DeckUpdate(RequestModel):
    name: DeckName


class Deck(ApiModel):
    id: str
    user_id: str
    name: str
    created_at: str


class DeckList(ApiModel):
    items: list[Deck]
    total: int
    offset: int
    limit: int
