"""
SM-2 scheduling engine.

Quality scores:
  0-2  failed recall   -> interval resets to 1 day, repetition to 0
  3    hard recall     -> interval grows by a fixed 1.2x
  4-5  good / perfect  -> interval grows by the card's ease factor

The ease factor is updated with the standard SM-2 formula on every review,
whatever the outcome, and never drops below 1.3.

Pure: no I/O and no clock reads. Callers pass ``now`` explicitly.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from flashdeck.errors import InvalidQualityError

MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3

MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
DEFAULT_INTERVAL_DAYS = 1
HARD_INTERVAL_MULTIPLIER = 1.2


@dataclass(frozen=True)
class CardSchedulingState:
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval_days: int = DEFAULT_INTERVAL_DAYS
    repetition: int = 0
    next_review_at: datetime | None = None


def new_card_state() -> CardSchedulingState:
    """Scheduling state of a freshly created card (never reviewed)."""
    return CardSchedulingState()


def validate_quality(quality: object) -> int:
    # bool is an int subclass; True is not a quality score
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQualityError(quality)
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise InvalidQualityError(quality)
    return quality


def next_ease_factor(ease_factor: float, quality: int) -> float:
    """EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at 1.3, 2 decimals."""
    miss = MAX_QUALITY - quality
    new_ease = max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))
    return round(new_ease, 2)


def compute_next_state(
    current: CardSchedulingState,
    quality: int,
    now: datetime,
) -> CardSchedulingState:
    """
    Compute a card's scheduling state after a review.

    Raises InvalidQualityError if quality is not an integer in [0, 5]; in that
    case nothing else is evaluated. ``current`` is trusted to satisfy the
    stored-state invariants.
    """
    quality = validate_quality(quality)

    new_ease = next_ease_factor(current.ease_factor, quality)

    if quality < PASSING_QUALITY:
        new_interval = 1
        new_repetition = 0
    elif quality == PASSING_QUALITY:
        new_interval = math.ceil(current.interval_days * HARD_INTERVAL_MULTIPLIER)
        new_repetition = current.repetition + 1
    else:
        new_interval = math.ceil(current.interval_days * new_ease)
        new_repetition = current.repetition + 1

    return CardSchedulingState(
        ease_factor=new_ease,
        interval_days=new_interval,
        repetition=new_repetition,
        next_review_at=now + timedelta(days=new_interval),
    )
