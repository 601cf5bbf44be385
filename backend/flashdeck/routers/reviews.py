"""
Review router.

Endpoints:
  POST /reviews        submit a quality score, run SM-2, persist event + schedule
  GET  /reviews/queue  cards due now, earliest first
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from flashdeck.models.review import ReviewCreate, ReviewQueue, ReviewResult
from flashdeck.routers.deps import get_review_service, get_user_id
from flashdeck.services.review_service import ReviewService

router = APIRouter()


@router.post("", response_model=ReviewResult, status_code=201)
async def submit_review(
    body: ReviewCreate,
    user_id: str = Depends(get_user_id),
    service: ReviewService = Depends(get_review_service),
) -> ReviewResult:
    return await service.submit_review(
        user_id, body.flashcard_id, body.quality, latency_ms=body.latency_ms
    )


@router.get("/queue", response_model=ReviewQueue)
async def review_queue(
    user_id: str = Depends(get_user_id),
    service: ReviewService = Depends(get_review_service),
) -> ReviewQueue:
    return await service.get_review_queue(user_id)
