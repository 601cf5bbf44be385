"""
Domain error taxonomy.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API surfaces it with. The app factory registers a single handler that turns
any ``FlashdeckError`` into ``{"error": {"code": ..., "message": ...}}``.
"""
from __future__ import annotations


class FlashdeckError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class UnauthorizedError(FlashdeckError):
    code = "UNAUTHORIZED"
    status_code = 401


class InvalidQualityError(FlashdeckError):
    """Raised when a review quality score is not an integer in [0, 5]."""

    code = "INVALID_QUALITY"
    status_code = 400

    def __init__(self, quality: object) -> None:
        super().__init__(f"quality must be an integer between 0 and 5, got {quality!r}")
        self.quality = quality


class NotFoundError(FlashdeckError):
    code = "NOT_FOUND"
    status_code = 404


class FlashcardNotFoundError(NotFoundError):
    code = "FLASHCARD_NOT_FOUND"

    def __init__(self, flashcard_id: str) -> None:
        super().__init__("Flashcard not found or access denied")
        self.flashcard_id = flashcard_id


class DeckNotFoundError(NotFoundError):
    code = "DECK_NOT_FOUND"

    def __init__(self, deck_id: str) -> None:
        super().__init__("Deck not found or access denied")
        self.deck_id = deck_id


class DeckNameConflictError(FlashdeckError):
    code = "DECK_NAME_CONFLICT"
    status_code = 409

    def __init__(self, name: str) -> None:
        super().__init__("A deck with this name already exists")
        self.name = name


class ReviewPersistError(FlashdeckError):
    """The review event could not be stored. Nothing was written; safe to retry."""

    code = "REVIEW_SUBMISSION_FAILED"


class SchedulingUpdateFailedError(FlashdeckError):
    """The review event is stored but the card's scheduling state is stale."""

    code = "FLASHCARD_UPDATE_FAILED"

    def __init__(self, message: str, review_id: str) -> None:
        super().__init__(message)
        self.review_id = review_id


class RateLimitExceededError(FlashdeckError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after
