import logging

import aiosqlite
from fastapi import APIRouter, Depends, Query, Response

from flashdeck.db.sqlite import create_deck, delete_deck, get_db, get_deck, list_decks, update_deck
from flashdeck.errors import DeckNotFoundError
from flashdeck.models.deck import Deck, DeckCreate, DeckList, DeckUpdate
from flashdeck.routers.deps import DECK_CREATION, RateLimitGuard, get_user_id, rate_limit

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=Deck, status_code=201)
async def create_user_deck(
    body: DeckCreate,
    response: Response,
    user_id: str = Depends(get_user_id),
    guard: RateLimitGuard = Depends(rate_limit(DECK_CREATION)),
    db: aiosqlite.Connection = Depends(get_db),
):
    guard.admit()
    deck = await create_deck(db, user_id, body)
    response.headers["Location"] = f"/decks/{deck.id}"
    logger.info("Deck %s created for user %s", deck.id, user_id)
    return deck


@router.get("", response_model=DeckList)
async def list_user_decks(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    items, total = await list_decks(db, user_id, offset, limit)
    return DeckList(items=items, total=total, offset=offset, limit=limit)


@router.get("/{deck_id}", response_model=Deck)
async def get_user_deck(
    deck_id: str,
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    deck = await get_deck(db, user_id, deck_id)
    if not deck:
        raise DeckNotFoundError(deck_id)
    return deck


@router.patch("/{deck_id}", response_model=Deck)
async def rename_user_deck(
    deck_id: str,
    body: DeckUpdate,
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    deck = await update_deck(db, user_id, deck_id, body)
    if not deck:
        raise DeckNotFoundError(deck_id)
    logger.info("Deck %s renamed for user %s", deck_id, user_id)
    return deck


@router.delete("/{deck_id}", status_code=204)
async def delete_user_deck(
    deck_id: str,
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> None:
    deleted = await delete_deck(db, user_id, deck_id)
    if not deleted:
        raise DeckNotFoundError(deck_id)
