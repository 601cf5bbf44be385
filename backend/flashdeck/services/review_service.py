"""
Review submission and review queue.

submit_review runs in two persisted phases:
  1. insert the ReviewEvent (audit trail)
  2. write the card's new scheduling state

Phase 2 writes absolute values, so it is retried in place. If it still fails
the caller gets SchedulingUpdateFailedError (event stored, schedule stale),
which is distinct from ReviewPersistError (nothing stored).
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from flashdeck.errors import (
    FlashcardNotFoundError,
    ReviewPersistError,
    SchedulingUpdateFailedError,
)
from flashdeck.models.flashcard import Flashcard, FlashcardSchedule
from flashdeck.models.review import ReviewEvent, ReviewQueue, ReviewResult
from flashdeck.services.scheduler import (
    CardSchedulingState,
    compute_next_state,
    validate_quality,
)
from flashdeck.timestamps import to_iso, utcnow

logger = logging.getLogger(__name__)


class ReviewStore(Protocol):
    async def get_flashcard_scheduling_state(
        self, flashcard_id: str, user_id: str
    ) -> CardSchedulingState | None: ...

    async def insert_review_event(self, event: ReviewEvent) -> str: ...

    async def update_flashcard_scheduling_state(
        self, flashcard_id: str, user_id: str, state: CardSchedulingState
    ) -> None: ...

    async def list_due_flashcards(
        self, user_id: str, now: datetime, limit: int
    ) -> tuple[list[Flashcard], int]: ...


class ReviewService:
    def __init__(
        self,
        store: ReviewStore,
        clock: Callable[[], datetime] = utcnow,
        update_attempts: int = 2,
        queue_limit: int = 1000,
    ) -> None:
        self._store = store
        self._clock = clock
        self._update_attempts = max(1, update_attempts)
        self._queue_limit = queue_limit

    async def submit_review(
        self,
        user_id: str,
        flashcard_id: str,
        quality: int,
        latency_ms: int | None = None,
    ) -> ReviewResult:
        # Reject bad scores before touching storage
        validate_quality(quality)

        current = await self._store.get_flashcard_scheduling_state(flashcard_id, user_id)
        if current is None:
            logger.warning(
                "Review rejected: flashcard %s not found for user %s", flashcard_id, user_id
            )
            raise FlashcardNotFoundError(flashcard_id)

        now = self._clock()
        new_state = compute_next_state(current, quality, now)

        event = ReviewEvent(
            user_id=user_id,
            flashcard_id=flashcard_id,
            quality=quality,
            latency_ms=latency_ms,
            created_at=to_iso(now),
        )
        try:
            review_id = await self._store.insert_review_event(event)
        except Exception as e:
            logger.exception("Review insert failed for flashcard %s", flashcard_id)
            raise ReviewPersistError(f"Review could not be recorded: {e}") from e

        await self._write_state(review_id, flashcard_id, user_id, new_state)

        logger.info(
            "Review %s recorded: user=%s flashcard=%s quality=%d interval=%dd ease=%.2f",
            review_id,
            user_id,
            flashcard_id,
            quality,
            new_state.interval_days,
            new_state.ease_factor,
        )
        return ReviewResult(
            id=review_id,
            flashcard_id=flashcard_id,
            quality=quality,
            created_at=event.created_at,
            flashcard=_schedule(flashcard_id, new_state),
        )

    async def _write_state(
        self,
        review_id: str,
        flashcard_id: str,
        user_id: str,
        state: CardSchedulingState,
    ) -> None:
        last_error: Exception | None = None
        for attempt in range(1, self._update_attempts + 1):
            try:
                await self._store.update_flashcard_scheduling_state(
                    flashcard_id, user_id, state
                )
                return
            except FlashcardNotFoundError as e:
                # Card vanished after it was loaded; retrying cannot help
                last_error = e
                break
            except Exception as e:
                last_error = e
                logger.warning(
                    "Scheduling update for flashcard %s failed (attempt %d/%d): %s",
                    flashcard_id,
                    attempt,
                    self._update_attempts,
                    e,
                )

        logger.error(
            "Review %s stored but flashcard %s schedule not updated; needs reconciliation",
            review_id,
            flashcard_id,
        )
        raise SchedulingUpdateFailedError(
            f"Review {review_id} was recorded but the flashcard schedule could not be updated",
            review_id=review_id,
        ) from last_error

    async def get_review_queue(self, user_id: str) -> ReviewQueue:
        """All cards due now (next_review_at set and in the past), earliest first."""
        items, total = await self._store.list_due_flashcards(
            user_id, self._clock(), self._queue_limit
        )
        return ReviewQueue(data=items, total_due=total)


def _schedule(flashcard_id: str, state: CardSchedulingState) -> FlashcardSchedule:
    return FlashcardSchedule(
        id=flashcard_id,
        ease_factor=state.ease_factor,
        interval_days=state.interval_days,
        repetition=state.repetition,
        next_review_at=to_iso(state.next_review_at) if state.next_review_at else None,
    )
