from __future__ import annotations

from fastapi import APIRouter, status

from flashdeck.apis.deps import Backend
from flashdeck.modules.reviews.models import (
    CreateReviewSessionCommand,
    CreateReviewSessionResponse,
)


router = APIRouter()


@router.post(
    "/api/review-sessions",
    response_model=CreateReviewSessionResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["review-sessions"],
)
async def create_review_session(
    req: CreateReviewSessionCommand, backend: Backend
) -> CreateReviewSessionResponse:
    """Log a batch of graded reviews; every card id must exist."""
    return await backend.log_review_session(req)
