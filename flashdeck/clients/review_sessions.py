from __future__ import annotations

from flashdeck.clients.base import BaseApiClient
from flashdeck.modules.reviews.models import (
    CreateReviewSessionCommand,
    CreateReviewSessionResponse,
)


class ReviewSessionsApiClient(BaseApiClient):
    async def create(self, command: CreateReviewSessionCommand) -> CreateReviewSessionResponse:
        data = await self.post("/review-sessions", command)
        return CreateReviewSessionResponse.model_validate(data)
