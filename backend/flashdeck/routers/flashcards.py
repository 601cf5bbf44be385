"""
Flashcard router.

Endpoints:
  POST   /flashcards            create a card (rate limited per user)
  GET    /flashcards            list cards (deck filter, due filter)
  POST   /flashcards/generate   AI-generate cards from source text (rate limited)
  GET    /flashcards/{id}       single card
  PATCH  /flashcards/{id}       edit front / back / deck
  DELETE /flashcards/{id}       delete card and its review history
"""
from __future__ import annotations

import logging

import aiosqlite
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from flashdeck.config import settings
from flashdeck.db.sqlite import (
    create_flashcard,
    delete_flashcard,
    get_db,
    get_deck,
    get_flashcard,
    list_flashcards,
    update_flashcard_content,
)
from flashdeck.errors import DeckNotFoundError, FlashcardNotFoundError
from flashdeck.models.flashcard import (
    Flashcard,
    FlashcardCreate,
    FlashcardList,
    FlashcardUpdate,
)
from flashdeck.models.generation import GenerateFlashcardsRequest, GenerationResult
from flashdeck.routers.deps import (
    AI_GENERATION,
    FLASHCARD_CREATION,
    RateLimitGuard,
    get_completion_provider,
    get_user_id,
    rate_limit,
)
from flashdeck.services.flashcard_generator import GenerationParseError, generate_flashcards
from flashdeck.services.llm_service import CompletionProvider, LLMUnavailableError

logger = logging.getLogger(__name__)
router = APIRouter()


async def _require_deck(db: aiosqlite.Connection, user_id: str, deck_id: str | None) -> None:
    if deck_id and not await get_deck(db, user_id, deck_id):
        raise DeckNotFoundError(deck_id)


@router.post("", response_model=Flashcard, status_code=201)
async def create_card(
    body: FlashcardCreate,
    user_id: str = Depends(get_user_id),
    guard: RateLimitGuard = Depends(rate_limit(FLASHCARD_CREATION)),
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    await _require_deck(db, user_id, body.deck_id)
    guard.admit()
    card = await create_flashcard(db, user_id, body)
    logger.info("Flashcard %s created for user %s (%s)", card.id, user_id, card.source.value)
    return card


@router.get("", response_model=FlashcardList)
async def list_cards(
    deck_id: str | None = Query(default=None),
    review_due: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> FlashcardList:
    """List the caller's flashcards, optionally only one deck's or only those due."""
    items, total = await list_flashcards(
        db, user_id, deck_id=deck_id, review_due=review_due, offset=offset, limit=limit
    )
    return FlashcardList(items=items, total=total, offset=offset, limit=limit)


@router.post("/generate", response_model=GenerationResult)
async def generate_cards(
    body: GenerateFlashcardsRequest,
    user_id: str = Depends(get_user_id),
    guard: RateLimitGuard = Depends(rate_limit(AI_GENERATION)),
    provider: CompletionProvider = Depends(get_completion_provider),
    db: aiosqlite.Connection = Depends(get_db),
):
    """Generate flashcards from 1000-10000 chars of text. Nothing is stored."""
    await _require_deck(db, user_id, body.deck_id)
    guard.admit()

    try:
        cards = await generate_flashcards(
            provider, body.source_text, max_tokens=settings.llm_max_tokens
        )
    except LLMUnavailableError as e:
        logger.warning("AI generation unavailable for user %s: %s", user_id, e)
        return JSONResponse(
            status_code=503,
            content={
                "error": {
                    "code": "AI_SERVICE_UNAVAILABLE",
                    "message": "The AI generation service is currently unavailable",
                }
            },
        )
    except GenerationParseError as e:
        logger.error("AI generation returned unparseable output for user %s: %s", user_id, e)
        return JSONResponse(
            status_code=502,
            content={
                "error": {
                    "code": "AI_SERVICE_ERROR",
                    "message": "Invalid response format from AI service",
                }
            },
        )

    logger.info(
        "Generated %d flashcards for user %s (deck %s)", len(cards), user_id, body.deck_id
    )
    return GenerationResult(flashcards=cards)


@router.get("/{card_id}", response_model=Flashcard)
async def get_card(
    card_id: str,
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    card = await get_flashcard(db, user_id, card_id)
    if not card:
        raise FlashcardNotFoundError(card_id)
    return card


@router.patch("/{card_id}", response_model=Flashcard)
async def edit_card(
    card_id: str,
    body: FlashcardUpdate,
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    await _require_deck(db, user_id, body.deck_id)
    updated = await update_flashcard_content(db, user_id, card_id, body)
    if not updated:
        raise FlashcardNotFoundError(card_id)
    return updated


@router.delete("/{card_id}", status_code=204)
async def remove_card(
    card_id: str,
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> None:
    deleted = await delete_flashcard(db, user_id, card_id)
    if not deleted:
        raise FlashcardNotFoundError(card_id)
