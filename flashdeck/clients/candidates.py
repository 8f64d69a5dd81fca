from __future__ import annotations

from typing import Optional, Sequence

from flashdeck.clients.base import BaseApiClient
from flashdeck.modules.flashcards.models import Flashcard, Page
from flashdeck.modules.generation.models import (
    AcceptCandidateCommand,
    CandidateStatus,
    GenerationCandidate,
    UpdateCandidateCommand,
)


class GenerationCandidatesApiClient(BaseApiClient):
    """Review of AI-proposed cards."""

    async def list(
        self,
        generation_id: str,
        *,
        statuses: Optional[Sequence[CandidateStatus]] = None,
        cursor: Optional[str] = None,
        limit: int = 20,
    ) -> Page[GenerationCandidate]:
        data = await self.get(
            "/generation-candidates",
            params={
                "generation_id": generation_id,
                "status": [CandidateStatus(s).value for s in statuses] if statuses else None,
                "cursor": cursor,
                "limit": limit,
            },
        )
        return Page[GenerationCandidate].model_validate(data)

    async def get_by_id(self, candidate_id: str) -> GenerationCandidate:
        data = await self.get(f"/generation-candidates/{candidate_id}")
        return GenerationCandidate.model_validate(data)

    async def update(
        self, candidate_id: str, command: UpdateCandidateCommand
    ) -> GenerationCandidate:
        data = await self.patch(f"/generation-candidates/{candidate_id}", command)
        return GenerationCandidate.model_validate(data)

    async def accept(
        self, candidate_id: str, command: Optional[AcceptCandidateCommand] = None
    ) -> Flashcard:
        data = await self.post(
            f"/generation-candidates/{candidate_id}/accept",
            command or AcceptCandidateCommand(),
        )
        return Flashcard.model_validate(data)

    async def reject(self, candidate_id: str) -> GenerationCandidate:
        data = await self.post(f"/generation-candidates/{candidate_id}/reject", {})
        return GenerationCandidate.model_validate(data)
