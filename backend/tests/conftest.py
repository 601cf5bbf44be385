"""
Shared test fixtures.

Provides:
- FakeClock for the rate limiters (monotonic seconds, advanced by hand)
- A fixed UTC "now" for the scheduler and review service
- InMemoryReviewStore with switchable persistence failures
- A temporary aiosqlite database
- A FastAPI TestClient on a fresh app with a mocked completion provider
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import aiosqlite
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from flashdeck import create_app
from flashdeck.config import settings
from flashdeck.db.sqlite import init_sqlite
from flashdeck.errors import FlashcardNotFoundError
from flashdeck.models.review import ReviewEvent
from flashdeck.services.scheduler import CardSchedulingState


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryReviewStore:
    """ReviewStore double. Failure switches mimic a flaky database."""

    def __init__(self):
        self.states: dict[tuple[str, str], CardSchedulingState] = {}
        self.events: list[tuple[str, ReviewEvent]] = []
        self.due: list = []
        self.insert_error: Exception | None = None
        self.update_failures = 0
        self.update_calls = 0
        self.drop_card_on_insert = False

    def add_card(self, card_id: str, user_id: str, state: CardSchedulingState | None = None):
        self.states[(card_id, user_id)] = state or CardSchedulingState()

    async def get_flashcard_scheduling_state(self, flashcard_id, user_id):
        return self.states.get((flashcard_id, user_id))

    async def insert_review_event(self, event):
        if self.insert_error is not None:
            raise self.insert_error
        review_id = f"review-{len(self.events) + 1}"
        self.events.append((review_id, event))
        if self.drop_card_on_insert:
            self.states.pop((event.flashcard_id, event.user_id), None)
        return review_id

    async def update_flashcard_scheduling_state(self, flashcard_id, user_id, state):
        self.update_calls += 1
        if self.update_failures:
            self.update_failures -= 1
            raise RuntimeError("database is locked")
        if (flashcard_id, user_id) not in self.states:
            raise FlashcardNotFoundError(flashcard_id)
        self.states[(flashcard_id, user_id)] = state

    async def list_due_flashcards(self, user_id, now, limit):
        return self.due[:limit], len(self.due)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def memory_store() -> InMemoryReviewStore:
    return InMemoryReviewStore()


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh schema in a temp dir, one connection with foreign keys on."""
    await init_sqlite(tmp_path)
    async with aiosqlite.connect(tmp_path / settings.sqlite_filename) as conn:
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys=ON")
        yield conn


@pytest.fixture
def provider() -> AsyncMock:
    mock = AsyncMock()
    mock.complete.return_value = json.dumps(
        [
            {"front": "What is mitosis?", "back": "Cell division producing two identical cells"},
            {"front": "What is meiosis?", "back": "Cell division producing four gametes"},
        ]
    )
    return mock


@pytest.fixture
def app(tmp_path, monkeypatch, provider):
    monkeypatch.setattr(settings, "flashdeck_data_dir", tmp_path / "data")
    application = create_app()
    application.state.completion_provider = provider
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user_headers() -> dict:
    return {"X-User-Id": "user-1"}


@pytest.fixture
def other_user_headers() -> dict:
    return {"X-User-Id": "user-2"}
