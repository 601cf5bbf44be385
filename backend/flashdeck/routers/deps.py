"""
Shared FastAPI dependencies: caller identity, per-operation rate limits,
service construction.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass

import aiosqlite
from fastapi import Depends, Header, Request

from flashdeck.config import Settings, settings
from flashdeck.db.sqlite import SqliteReviewStore, get_db
from flashdeck.errors import RateLimitExceededError, UnauthorizedError
from flashdeck.services.llm_service import CompletionProvider
from flashdeck.services.rate_limiter import (
    Clock,
    LimiterRegistry,
    RateLimiter,
    sliding_window_registry,
)
from flashdeck.services.review_service import ReviewService

logger = logging.getLogger(__name__)

DECK_CREATION = "deck_creation"
FLASHCARD_CREATION = "flashcard_creation"
AI_GENERATION = "ai_generation"


@dataclass
class RateLimitRule:
    registry: LimiterRegistry
    window_seconds: float
    message: str


@dataclass
class RateLimitGuard:
    """One caller's limiter for one operation. Call admit() once the request is valid."""

    category: str
    user_id: str
    limiter: RateLimiter
    window_seconds: float
    message: str

    def admit(self) -> None:
        if self.limiter.try_consume():
            return
        wait = self.limiter.retry_after()
        retry_after = math.ceil(self.window_seconds) if wait is None else math.ceil(wait)
        logger.warning(
            "Rate limited: user=%s operation=%s retry_after=%ss",
            self.user_id,
            self.category,
            retry_after,
        )
        raise RateLimitExceededError(self.message, retry_after=max(1, retry_after))


def build_rate_limits(cfg: Settings, clock: Clock = time.monotonic) -> dict[str, RateLimitRule]:
    def rule(max_requests: int, window: float, message: str) -> RateLimitRule:
        return RateLimitRule(
            registry=sliding_window_registry(
                max_requests,
                window,
                enabled=cfg.rate_limiting_enabled,
                max_size=cfg.limiter_registry_max_size,
                ttl_seconds=max(cfg.limiter_registry_ttl_seconds, window),
                clock=clock,
            ),
            window_seconds=window,
            message=message,
        )

    return {
        DECK_CREATION: rule(
            cfg.deck_creation_max_requests,
            cfg.deck_creation_window_seconds,
            "Too many deck creation requests. Please try again later.",
        ),
        FLASHCARD_CREATION: rule(
            cfg.flashcard_creation_max_requests,
            cfg.flashcard_creation_window_seconds,
            "Too many flashcard creation requests. Please try again later.",
        ),
        AI_GENERATION: rule(
            cfg.ai_generation_max_requests,
            cfg.ai_generation_window_seconds,
            "Too many AI generation requests. Please try again later.",
        ),
    }


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError("Authentication required")
    return x_user_id.strip()


def rate_limit(category: str):
    def dependency(request: Request, user_id: str = Depends(get_user_id)) -> RateLimitGuard:
        rule: RateLimitRule = request.app.state.rate_limits[category]
        return RateLimitGuard(
            category=category,
            user_id=user_id,
            limiter=rule.registry.get(user_id),
            window_seconds=rule.window_seconds,
            message=rule.message,
        )

    return dependency


def get_review_service(db: aiosqlite.Connection = Depends(get_db)) -> ReviewService:
    return ReviewService(
        SqliteReviewStore(db),
        update_attempts=settings.scheduling_update_attempts,
        queue_limit=settings.review_queue_limit,
    )


def get_completion_provider(request: Request) -> CompletionProvider:
    return request.app.state.completion_provider
