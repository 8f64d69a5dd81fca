from __future__ import annotations

from typing import Optional

from flashdeck.clients.base import BaseApiClient
from flashdeck.core.config import settings
from flashdeck.modules.generation.models import (
    CreateGenerationCommand,
    CreateGenerationResponse,
    GenerationDetail,
    GenerationRecord,
    ProcessGenerationsResponse,
    UpdateGenerationCommand,
)


class GenerationsApiClient(BaseApiClient):
    """Generation lifecycle endpoints."""

    async def create(self, command: CreateGenerationCommand) -> CreateGenerationResponse:
        data = await self.post("/generations", command)
        return CreateGenerationResponse.model_validate(data)

    async def list(self, *, include_finished: bool = False, limit: int = 10) -> list[GenerationRecord]:
        """Newest first; only pending/running ones unless ``include_finished``."""
        data = await self.get(
            "/generations", params={"all": include_finished, "limit": limit}
        )
        return [GenerationRecord.model_validate(item) for item in data.get("data", [])]

    async def get_by_id(self, generation_id: str) -> GenerationDetail:
        data = await self.get(f"/generations/{generation_id}")
        return GenerationDetail.model_validate(data)

    async def update(
        self, generation_id: str, command: Optional[UpdateGenerationCommand] = None
    ) -> GenerationRecord:
        data = await self.patch(
            f"/generations/{generation_id}", command or UpdateGenerationCommand()
        )
        return GenerationRecord.model_validate(data)

    async def process(self) -> ProcessGenerationsResponse:
        """Nudge the worker; the long timeout covers a full model call."""
        data = await self.post(
            "/generations/process", timeout=settings.api.process_timeout_seconds
        )
        return ProcessGenerationsResponse.model_validate(data)
