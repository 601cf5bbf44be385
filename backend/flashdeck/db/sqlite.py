import uuid
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from flashdeck.config import settings
from flashdeck.errors import DeckNameConflictError, FlashcardNotFoundError
from flashdeck.models.deck import Deck, DeckCreate, DeckUpdate
from flashdeck.models.flashcard import (
    Flashcard,
    FlashcardCreate,
    FlashcardSource,
    FlashcardUpdate,
)
from flashdeck.models.review import ReviewEvent
from flashdeck.services.scheduler import CardSchedulingState, new_card_state
from flashdeck.timestamps import parse_iso, to_iso, utcnow

_db_path: Path | None = None

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS decks (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    name        TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    UNIQUE (user_id, name)
);

CREATE TABLE IF NOT EXISTS flashcards (
    id             TEXT PRIMARY KEY,
    user_id        TEXT NOT NULL,
    deck_id        TEXT REFERENCES decks(id) ON DELETE SET NULL,
    front          TEXT NOT NULL CHECK (length(front) <= 1000),
    back           TEXT NOT NULL CHECK (length(back) <= 1000),
    source         TEXT NOT NULL DEFAULT 'manual',
    ease_factor    REAL NOT NULL DEFAULT 2.5 CHECK (ease_factor >= 1.3),
    interval_days  INTEGER NOT NULL DEFAULT 1 CHECK (interval_days >= 1),
    repetition     INTEGER NOT NULL DEFAULT 0 CHECK (repetition >= 0),
    next_review_at TEXT,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_flashcards_user_review ON flashcards(user_id, next_review_at);
CREATE INDEX IF NOT EXISTS idx_flashcards_user_deck ON flashcards(user_id, deck_id);

CREATE TABLE IF NOT EXISTS reviews (
    id           TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL,
    flashcard_id TEXT NOT NULL REFERENCES flashcards(id) ON DELETE CASCADE,
    quality      INTEGER NOT NULL CHECK (quality BETWEEN 0 AND 5),
    latency_ms   INTEGER,
    created_at   TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_reviews_flashcard ON reviews(flashcard_id);

-- No foreign key: delete events must outlive the card
CREATE TABLE IF NOT EXISTS events (
    id           TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL,
    flashcard_id TEXT NOT NULL,
    action       TEXT NOT NULL CHECK (action IN ('create', 'accept', 'edit', 'delete')),
    source       TEXT NOT NULL,
    created_at   TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_flashcard ON events(flashcard_id, created_at);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
INSERT OR IGNORE INTO schema_version(version) VALUES (1);
"""


async def init_sqlite(data_dir: Path) -> None:
    global _db_path
    _db_path = data_dir / settings.sqlite_filename
    async with aiosqlite.connect(_db_path) as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()


async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    assert _db_path is not None, "SQLite not initialized"
    async with aiosqlite.connect(_db_path) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys=ON")
        yield db


def _now() -> str:
    return to_iso(utcnow())


# --- Decks ---


def _row_to_deck(row: aiosqlite.Row) -> Deck:
    return Deck(**dict(row))


async def create_deck(db: aiosqlite.Connection, user_id: str, body: DeckCreate) -> Deck:
    """Raises DeckNameConflictError if the user already has a deck with this name."""
    deck_id = str(uuid.uuid4())
    try:
        await db.execute(
            "INSERT INTO decks (id, user_id, name, created_at) VALUES (?, ?, ?, ?)",
            (deck_id, user_id, body.name, _now()),
        )
    except aiosqlite.IntegrityError as e:
        await db.rollback()
        raise DeckNameConflictError(body.name) from e
    await db.commit()
    return await get_deck(db, user_id, deck_id)  # type: ignore[return-value]


async def update_deck(
    db: aiosqlite.Connection, user_id: str, deck_id: str, body: DeckUpdate
) -> Deck | None:
    """Rename a deck. None if it does not exist; DeckNameConflictError if the name is taken."""
    try:
        cursor = await db.execute(
            "UPDATE decks SET name = ? WHERE id = ? AND user_id = ?",
            (body.name, deck_id, user_id),
        )
    except aiosqlite.IntegrityError as e:
        await db.rollback()
        raise DeckNameConflictError(body.name) from e
    await db.commit()
    if not cursor.rowcount:
        return None
    return await get_deck(db, user_id, deck_id)


async def get_deck(db: aiosqlite.Connection, user_id: str, deck_id: str) -> Deck | None:
    cursor = await db.execute(
        "SELECT * FROM decks WHERE id = ? AND user_id = ?", (deck_id, user_id)
    )
    row = await cursor.fetchone()
    return _row_to_deck(row) if row else None


async def list_decks(
    db: aiosqlite.Connection, user_id: str, offset: int = 0, limit: int = 50
) -> tuple[list[Deck], int]:
    cursor = await db.execute("SELECT COUNT(*) FROM decks WHERE user_id = ?", (user_id,))
    total = (await cursor.fetchone())[0]

    cursor = await db.execute(
        "SELECT * FROM decks WHERE user_id = ? ORDER BY created_at DESC LIMIT ? OFFSET ?",
        (user_id, limit, offset),
    )
    rows = await cursor.fetchall()
    return [_row_to_deck(r) for r in rows], total


async def delete_deck(db: aiosqlite.Connection, user_id: str, deck_id: str) -> bool:
    cursor = await db.execute(
        "DELETE FROM decks WHERE id = ? AND user_id = ?", (deck_id, user_id)
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


# --- Flashcards ---


def _row_to_flashcard(row: aiosqlite.Row) -> Flashcard:
    return Flashcard(**dict(row))


async def create_flashcard(
    db: aiosqlite.Connection, user_id: str, body: FlashcardCreate
) -> Flashcard:
    card_id = str(uuid.uuid4())
    state = new_card_state()
    now = _now()
    await db.execute(
        """INSERT INTO flashcards
           (id, user_id, deck_id, front, back, source,
            ease_factor, interval_days, repetition, next_review_at,
            created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            card_id,
            user_id,
            body.deck_id,
            body.front,
            body.back,
            body.source.value,
            state.ease_factor,
            state.interval_days,
            state.repetition,
            None,
            now,
            now,
        ),
    )
    action = "create" if body.source == FlashcardSource.MANUAL else "accept"
    await insert_event(db, user_id, card_id, action, body.source.value)
    await db.commit()
    return await get_flashcard(db, user_id, card_id)  # type: ignore[return-value]


async def get_flashcard(
    db: aiosqlite.Connection, user_id: str, card_id: str
) -> Flashcard | None:
    cursor = await db.execute(
        "SELECT * FROM flashcards WHERE id = ? AND user_id = ?", (card_id, user_id)
    )
    row = await cursor.fetchone()
    return _row_to_flashcard(row) if row else None


async def list_flashcards(
    db: aiosqlite.Connection,
    user_id: str,
    deck_id: str | None = None,
    review_due: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[Flashcard], int]:
    where = ["user_id = ?"]
    params: list = [user_id]
    if deck_id:
        where.append("deck_id = ?")
        params.append(deck_id)
    if review_due:
        where.append("next_review_at IS NOT NULL AND next_review_at <= ?")
        params.append(_now())
    clause = " AND ".join(where)
    order = "next_review_at ASC" if review_due else "created_at ASC"

    count_cursor = await db.execute(
        f"SELECT COUNT(*) FROM flashcards WHERE {clause}",  # noqa: S608
        params,
    )
    total = (await count_cursor.fetchone())[0]

    cursor = await db.execute(
        f"SELECT * FROM flashcards WHERE {clause} ORDER BY {order} LIMIT ? OFFSET ?",  # noqa: S608
        params + [limit, offset],
    )
    rows = await cursor.fetchall()
    return [_row_to_flashcard(r) for r in rows], total


async def update_flashcard_content(
    db: aiosqlite.Connection,
    user_id: str,
    card_id: str,
    update: FlashcardUpdate,
) -> Flashcard | None:
    card = await get_flashcard(db, user_id, card_id)
    if not card:
        return None

    fields = update.model_dump(mode="json", exclude_unset=True)
    # front/back/source cannot be cleared; an explicit null deck_id detaches the card
    fields = {k: v for k, v in fields.items() if v is not None or k == "deck_id"}
    if not fields:
        return card

    fields["updated_at"] = _now()
    set_clause = ", ".join(f"{k} = ?" for k in fields)
    values = list(fields.values()) + [card_id, user_id]

    await db.execute(
        f"UPDATE flashcards SET {set_clause} WHERE id = ? AND user_id = ?",  # noqa: S608
        values,
    )
    # The event records the source the card had before this edit
    await insert_event(db, user_id, card_id, "edit", card.source.value)
    await db.commit()
    return await get_flashcard(db, user_id, card_id)


async def delete_flashcard(db: aiosqlite.Connection, user_id: str, card_id: str) -> bool:
    card = await get_flashcard(db, user_id, card_id)
    if not card:
        return False
    await db.execute(
        "DELETE FROM flashcards WHERE id = ? AND user_id = ?", (card_id, user_id)
    )
    await insert_event(db, user_id, card_id, "delete", card.source.value)
    await db.commit()
    return True


# --- Flashcard audit events ---


async def insert_event(
    db: aiosqlite.Connection, user_id: str, card_id: str, action: str, source: str
) -> None:
    """Append an audit row. Runs inside the caller's transaction; the caller commits."""
    await db.execute(
        """INSERT INTO events (id, user_id, flashcard_id, action, source, created_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (str(uuid.uuid4()), user_id, card_id, action, source, _now()),
    )


async def list_events(
    db: aiosqlite.Connection, user_id: str, card_id: str
) -> list[dict]:
    cursor = await db.execute(
        """SELECT action, source, created_at FROM events
           WHERE user_id = ? AND flashcard_id = ?
           ORDER BY created_at ASC, rowid ASC""",
        (user_id, card_id),
    )
    return [dict(r) for r in await cursor.fetchall()]


# --- Scheduling / Reviews ---


async def get_scheduling_state(
    db: aiosqlite.Connection, user_id: str, card_id: str
) -> CardSchedulingState | None:
    cursor = await db.execute(
        """SELECT ease_factor, interval_days, repetition, next_review_at
           FROM flashcards WHERE id = ? AND user_id = ?""",
        (card_id, user_id),
    )
    row = await cursor.fetchone()
    if row is None:
        return None
    return CardSchedulingState(
        ease_factor=float(row["ease_factor"]),
        interval_days=int(row["interval_days"]),
        repetition=int(row["repetition"]),
        next_review_at=parse_iso(row["next_review_at"]),
    )


async def update_flashcard_schedule(
    db: aiosqlite.Connection,
    user_id: str,
    card_id: str,
    state: CardSchedulingState,
) -> bool:
    """Idempotent: writes absolute values, so repeating it is harmless."""
    cursor = await db.execute(
        """UPDATE flashcards
           SET ease_factor = ?, interval_days = ?, repetition = ?,
               next_review_at = ?, updated_at = ?
           WHERE id = ? AND user_id = ?""",
        (
            state.ease_factor,
            state.interval_days,
            state.repetition,
            to_iso(state.next_review_at) if state.next_review_at else None,
            _now(),
            card_id,
            user_id,
        ),
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


async def insert_review(db: aiosqlite.Connection, event: ReviewEvent) -> str:
    review_id = str(uuid.uuid4())
    await db.execute(
        """INSERT INTO reviews
           (id, user_id, flashcard_id, quality, latency_ms, created_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (
            review_id,
            event.user_id,
            event.flashcard_id,
            event.quality,
            event.latency_ms,
            event.created_at,
        ),
    )
    await db.commit()
    return review_id


async def count_reviews(db: aiosqlite.Connection, card_id: str) -> int:
    cursor = await db.execute(
        "SELECT COUNT(*) FROM reviews WHERE flashcard_id = ?", (card_id,)
    )
    return (await cursor.fetchone())[0]


async def get_due_flashcards(
    db: aiosqlite.Connection,
    user_id: str,
    now: datetime,
    limit: int = 1000,
) -> tuple[list[Flashcard], int]:
    """Cards with next_review_at set and <= now, earliest first. Never-reviewed cards are excluded."""
    cutoff = to_iso(now)
    count_cursor = await db.execute(
        """SELECT COUNT(*) FROM flashcards
           WHERE user_id = ? AND next_review_at IS NOT NULL AND next_review_at <= ?""",
        (user_id, cutoff),
    )
    total = (await count_cursor.fetchone())[0]

    cursor = await db.execute(
        """SELECT * FROM flashcards
           WHERE user_id = ? AND next_review_at IS NOT NULL AND next_review_at <= ?
           ORDER BY next_review_at ASC
           LIMIT ?""",
        (user_id, cutoff, limit),
    )
    rows = await cursor.fetchall()
    return [_row_to_flashcard(r) for r in rows], total


class SqliteReviewStore:
    """ReviewStore backed by one aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def get_flashcard_scheduling_state(
        self, flashcard_id: str, user_id: str
    ) -> CardSchedulingState | None:
        return await get_scheduling_state(self._db, user_id, flashcard_id)

    async def insert_review_event(self, event: ReviewEvent) -> str:
        return await insert_review(self._db, event)

    async def update_flashcard_scheduling_state(
        self, flashcard_id: str, user_id: str, state: CardSchedulingState
    ) -> None:
        updated = await update_flashcard_schedule(self._db, user_id, flashcard_id, state)
        if not updated:
            raise FlashcardNotFoundError(flashcard_id)

    async def list_due_flashcards(
        self, user_id: str, now: datetime, limit: int
    ) -> tuple[list[Flashcard], int]:
        return await get_due_flashcards(self._db, user_id, now, limit)
