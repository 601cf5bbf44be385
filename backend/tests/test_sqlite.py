"""
Tests for the aiosqlite storage layer, run against a temp database file.
"""

from datetime import timedelta

import aiosqlite
import pytest

from flashdeck.db import sqlite
from flashdeck.db.sqlite import SqliteReviewStore
from flashdeck.errors import DeckNameConflictError, FlashcardNotFoundError
from flashdeck.models.deck import DeckCreate, DeckUpdate
from flashdeck.models.flashcard import FlashcardCreate, FlashcardSource, FlashcardUpdate
from flashdeck.models.review import ReviewEvent
from flashdeck.services.review_service import ReviewService
from flashdeck.services.scheduler import CardSchedulingState
from flashdeck.timestamps import to_iso, utcnow

pytestmark = pytest.mark.asyncio


async def _card(db, user_id="user-1", front="Q", back="A", deck_id=None):
    return await sqlite.create_flashcard(
        db, user_id, FlashcardCreate(front=front, back=back, deck_id=deck_id)
    )


async def _schedule(db, card, next_review_at, user_id="user-1"):
    await sqlite.update_flashcard_schedule(
        db,
        user_id,
        card.id,
        CardSchedulingState(
            ease_factor=2.5, interval_days=3, repetition=1, next_review_at=next_review_at
        ),
    )


class TestDecks:
    async def test_create_and_get(self, db):
        deck = await sqlite.create_deck(db, "user-1", DeckCreate(name="Biology"))
        assert deck.name == "Biology"
        assert deck.user_id == "user-1"
        fetched = await sqlite.get_deck(db, "user-1", deck.id)
        assert fetched == deck

    async def test_other_user_cannot_see_deck(self, db):
        deck = await sqlite.create_deck(db, "user-1", DeckCreate(name="Biology"))
        assert await sqlite.get_deck(db, "user-2", deck.id) is None

    async def test_name_unique_per_user(self, db):
        await sqlite.create_deck(db, "user-1", DeckCreate(name="Biology"))
        with pytest.raises(DeckNameConflictError):
            await sqlite.create_deck(db, "user-1", DeckCreate(name="Biology"))
        # a different user may reuse it
        await sqlite.create_deck(db, "user-2", DeckCreate(name="Biology"))

    async def test_rename(self, db):
        deck = await sqlite.create_deck(db, "user-1", DeckCreate(name="Biology"))
        renamed = await sqlite.update_deck(db, "user-1", deck.id, DeckUpdate(name="Cell Biology"))
        assert renamed.id == deck.id
        assert renamed.name == "Cell Biology"
        assert (await sqlite.get_deck(db, "user-1", deck.id)).name == "Cell Biology"

    async def test_rename_to_same_name(self, db):
        deck = await sqlite.create_deck(db, "user-1", DeckCreate(name="Biology"))
        renamed = await sqlite.update_deck(db, "user-1", deck.id, DeckUpdate(name="Biology"))
        assert renamed.name == "Biology"

    async def test_rename_conflict(self, db):
        await sqlite.create_deck(db, "user-1", DeckCreate(name="Biology"))
        deck = await sqlite.create_deck(db, "user-1", DeckCreate(name="Chemistry"))
        with pytest.raises(DeckNameConflictError):
            await sqlite.update_deck(db, "user-1", deck.id, DeckUpdate(name="Biology"))
        assert (await sqlite.get_deck(db, "user-1", deck.id)).name == "Chemistry"

    async def test_rename_missing_or_foreign(self, db):
        deck = await sqlite.create_deck(db, "user-1", DeckCreate(name="Biology"))
        assert await sqlite.update_deck(db, "user-1", "missing", DeckUpdate(name="X")) is None
        assert await sqlite.update_deck(db, "user-2", deck.id, DeckUpdate(name="X")) is None
        assert (await sqlite.get_deck(db, "user-1", deck.id)).name == "Biology"

    async def test_list_paginates(self, db):
        for name in ("A", "B", "C"):
            await sqlite.create_deck(db, "user-1", DeckCreate(name=name))
        items, total = await sqlite.list_decks(db, "user-1", offset=0, limit=2)
        assert total == 3
        assert len(items) == 2

    async def test_delete_detaches_cards(self, db):
        deck = await sqlite.create_deck(db, "user-1", DeckCreate(name="Biology"))
        card = await _card(db, deck_id=deck.id)
        assert await sqlite.delete_deck(db, "user-1", deck.id) is True
        fetched = await sqlite.get_flashcard(db, "user-1", card.id)
        assert fetched is not None
        assert fetched.deck_id is None

    async def test_delete_other_users_deck_is_noop(self, db):
        deck = await sqlite.create_deck(db, "user-1", DeckCreate(name="Biology"))
        assert await sqlite.delete_deck(db, "user-2", deck.id) is False
        assert await sqlite.get_deck(db, "user-1", deck.id) is not None


class TestFlashcards:
    async def test_new_card_defaults(self, db):
        card = await _card(db)
        assert card.ease_factor == 2.5
        assert card.interval_days == 1
        assert card.repetition == 0
        assert card.next_review_at is None
        assert card.source == FlashcardSource.MANUAL
        assert card.created_at == card.updated_at

    async def test_ownership_scoping(self, db):
        card = await _card(db)
        assert await sqlite.get_flashcard(db, "user-2", card.id) is None
        assert await sqlite.delete_flashcard(db, "user-2", card.id) is False

    async def test_list_filters_by_deck(self, db):
        deck = await sqlite.create_deck(db, "user-1", DeckCreate(name="Chem"))
        in_deck = await _card(db, deck_id=deck.id)
        await _card(db)
        items, total = await sqlite.list_flashcards(db, "user-1", deck_id=deck.id)
        assert total == 1
        assert items[0].id == in_deck.id

    async def test_list_review_due(self, db):
        due = await _card(db, front="due")
        await _schedule(db, due, utcnow() - timedelta(hours=1))
        future = await _card(db, front="future")
        await _schedule(db, future, utcnow() + timedelta(days=1))
        await _card(db, front="new")

        items, total = await sqlite.list_flashcards(db, "user-1", review_due=True)
        assert total == 1
        assert items[0].id == due.id

    async def test_partial_update(self, db):
        card = await _card(db, front="old front", back="old back")
        updated = await sqlite.update_flashcard_content(
            db, "user-1", card.id, FlashcardUpdate(front="new front")
        )
        assert updated.front == "new front"
        assert updated.back == "old back"

    async def test_update_can_detach_from_deck(self, db):
        deck = await sqlite.create_deck(db, "user-1", DeckCreate(name="Chem"))
        card = await _card(db, deck_id=deck.id)
        updated = await sqlite.update_flashcard_content(
            db, "user-1", card.id, FlashcardUpdate(deck_id=None)
        )
        assert updated.deck_id is None

    async def test_update_source(self, db):
        card = await sqlite.create_flashcard(
            db, "user-1", FlashcardCreate(front="Q", back="A", source=FlashcardSource.AI)
        )
        updated = await sqlite.update_flashcard_content(
            db, "user-1", card.id, FlashcardUpdate(front="Q edited", source=FlashcardSource.AI_EDITED)
        )
        assert updated.source == FlashcardSource.AI_EDITED
        assert updated.front == "Q edited"

    async def test_update_missing_card(self, db):
        assert (
            await sqlite.update_flashcard_content(
                db, "user-1", "missing", FlashcardUpdate(front="x")
            )
            is None
        )

    async def test_length_constraint_enforced_by_schema(self, db):
        card = await _card(db)
        with pytest.raises(aiosqlite.IntegrityError):
            await db.execute(
                "UPDATE flashcards SET front = ? WHERE id = ?", ("x" * 1001, card.id)
            )


class TestScheduling:
    async def test_state_round_trip(self, db):
        card = await _card(db)
        when = utcnow() + timedelta(days=3)
        await _schedule(db, card, when)
        state = await sqlite.get_scheduling_state(db, "user-1", card.id)
        assert state == CardSchedulingState(
            ease_factor=2.5, interval_days=3, repetition=1, next_review_at=when
        )

    async def test_update_is_idempotent(self, db):
        card = await _card(db)
        when = utcnow() + timedelta(days=3)
        await _schedule(db, card, when)
        await _schedule(db, card, when)
        state = await sqlite.get_scheduling_state(db, "user-1", card.id)
        assert state.repetition == 1

    async def test_update_missing_returns_false(self, db):
        assert (
            await sqlite.update_flashcard_schedule(
                db, "user-1", "missing", CardSchedulingState()
            )
            is False
        )

    async def test_schema_rejects_invalid_state(self, db):
        card = await _card(db)
        with pytest.raises(aiosqlite.IntegrityError):
            await sqlite.update_flashcard_schedule(
                db, "user-1", card.id, CardSchedulingState(ease_factor=1.0)
            )


class TestDueQuery:
    async def test_due_cards_earliest_first(self, db):
        now = utcnow()
        older = await _card(db, front="older")
        await _schedule(db, older, now - timedelta(days=2))
        newer = await _card(db, front="newer")
        await _schedule(db, newer, now - timedelta(hours=1))
        future = await _card(db, front="future")
        await _schedule(db, future, now + timedelta(days=1))
        await _card(db, front="never reviewed")
        foreign = await _card(db, user_id="user-2", front="foreign")
        await _schedule(db, foreign, now - timedelta(days=5), user_id="user-2")

        items, total = await sqlite.get_due_flashcards(db, "user-1", now)
        assert [c.id for c in items] == [older.id, newer.id]
        assert total == 2

    async def test_boundary_is_inclusive(self, db):
        now = utcnow()
        card = await _card(db)
        await _schedule(db, card, now)
        items, _ = await sqlite.get_due_flashcards(db, "user-1", now)
        assert [c.id for c in items] == [card.id]
        assert items[0].next_review_at == to_iso(now)

    async def test_limit_keeps_total(self, db):
        now = utcnow()
        for i in range(3):
            card = await _card(db, front=f"q{i}")
            await _schedule(db, card, now - timedelta(minutes=i + 1))
        items, total = await sqlite.get_due_flashcards(db, "user-1", now, limit=2)
        assert len(items) == 2
        assert total == 3


class TestReviews:
    async def test_insert_and_cascade(self, db):
        card = await _card(db)
        review_id = await sqlite.insert_review(
            db,
            ReviewEvent(
                user_id="user-1",
                flashcard_id=card.id,
                quality=4,
                latency_ms=800,
                created_at=to_iso(utcnow()),
            ),
        )
        assert review_id
        assert await sqlite.count_reviews(db, card.id) == 1

        await sqlite.delete_flashcard(db, "user-1", card.id)
        assert await sqlite.count_reviews(db, card.id) == 0

    async def test_review_needs_existing_card(self, db):
        with pytest.raises(aiosqlite.IntegrityError):
            await sqlite.insert_review(
                db,
                ReviewEvent(
                    user_id="user-1",
                    flashcard_id="missing",
                    quality=4,
                    latency_ms=None,
                    created_at=to_iso(utcnow()),
                ),
            )


class TestFlashcardEvents:
    async def test_manual_card_lifecycle(self, db):
        card = await _card(db)
        await sqlite.update_flashcard_content(db, "user-1", card.id, FlashcardUpdate(back="B"))
        await sqlite.delete_flashcard(db, "user-1", card.id)

        events = await sqlite.list_events(db, "user-1", card.id)
        assert [(e["action"], e["source"]) for e in events] == [
            ("create", "manual"),
            ("edit", "manual"),
            ("delete", "manual"),
        ]

    async def test_generated_card_is_accepted(self, db):
        card = await sqlite.create_flashcard(
            db, "user-1", FlashcardCreate(front="Q", back="A", source=FlashcardSource.AI)
        )
        await sqlite.update_flashcard_content(
            db, "user-1", card.id, FlashcardUpdate(source=FlashcardSource.AI_EDITED)
        )
        events = await sqlite.list_events(db, "user-1", card.id)
        # the edit event carries the source the card had before the edit
        assert [(e["action"], e["source"]) for e in events] == [
            ("accept", "ai"),
            ("edit", "ai"),
        ]

    async def test_failed_operations_write_nothing(self, db):
        card = await _card(db)
        assert await sqlite.delete_flashcard(db, "user-2", card.id) is False
        assert (
            await sqlite.update_flashcard_content(db, "user-2", card.id, FlashcardUpdate(back="B"))
            is None
        )
        assert await sqlite.list_events(db, "user-2", card.id) == []
        assert len(await sqlite.list_events(db, "user-1", card.id)) == 1

    async def test_reviews_do_not_write_events(self, db, fixed_now):
        card = await _card(db)
        await ReviewService(SqliteReviewStore(db), clock=lambda: fixed_now).submit_review(
            "user-1", card.id, 4
        )
        assert [e["action"] for e in await sqlite.list_events(db, "user-1", card.id)] == ["create"]


class TestSqliteReviewStore:
    async def test_update_missing_card_raises(self, db):
        store = SqliteReviewStore(db)
        with pytest.raises(FlashcardNotFoundError):
            await store.update_flashcard_scheduling_state(
                "missing", "user-1", CardSchedulingState()
            )

    async def test_full_review_flow(self, db, fixed_now):
        card = await _card(db)
        service = ReviewService(SqliteReviewStore(db), clock=lambda: fixed_now)

        result = await service.submit_review("user-1", card.id, 5, latency_ms=500)

        assert result.flashcard.ease_factor == 2.6
        assert result.flashcard.interval_days == 3
        assert result.flashcard.repetition == 1
        assert await sqlite.count_reviews(db, card.id) == 1

        stored = await sqlite.get_flashcard(db, "user-1", card.id)
        assert stored.ease_factor == 2.6
        assert stored.next_review_at == to_iso(fixed_now + timedelta(days=3))

    async def test_queue_after_review(self, db, fixed_now):
        card = await _card(db)
        await ReviewService(SqliteReviewStore(db), clock=lambda: fixed_now).submit_review(
            "user-1", card.id, 4
        )

        same_day = ReviewService(SqliteReviewStore(db), clock=lambda: fixed_now)
        assert (await same_day.get_review_queue("user-1")).total_due == 0

        later = ReviewService(
            SqliteReviewStore(db), clock=lambda: fixed_now + timedelta(days=10)
        )
        queue = await later.get_review_queue("user-1")
        assert queue.total_due == 1
        assert queue.data[0].id == card.id
