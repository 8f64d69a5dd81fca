from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Query

from flashdeck.apis.deps import Backend
from flashdeck.modules.flashcards.models import Flashcard, Page
from flashdeck.modules.generation.models import (
    AcceptCandidateCommand,
    CandidateStatus,
    GenerationCandidate,
    UpdateCandidateCommand,
)


router = APIRouter()


@router.get(
    "/api/generation-candidates",
    response_model=Page[GenerationCandidate],
    tags=["generation-candidates"],
)
async def list_candidates(
    backend: Backend,
    generation_id: str,
    statuses: Annotated[Optional[list[CandidateStatus]], Query(alias="status[]")] = None,
    cursor: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=100),
) -> Page[GenerationCandidate]:
    return await backend.list_candidates(
        generation_id, statuses=statuses, cursor=cursor, limit=limit
    )


@router.get(
    "/api/generation-candidates/{candidate_id}",
    response_model=GenerationCandidate,
    tags=["generation-candidates"],
)
async def get_candidate(candidate_id: str, backend: Backend) -> GenerationCandidate:
    return await backend.get_candidate(candidate_id)


@router.patch(
    "/api/generation-candidates/{candidate_id}",
    response_model=GenerationCandidate,
    tags=["generation-candidates"],
)
async def update_candidate(
    candidate_id: str, req: UpdateCandidateCommand, backend: Backend
) -> GenerationCandidate:
    return await backend.update_candidate(candidate_id, req)


@router.post(
    "/api/generation-candidates/{candidate_id}/accept",
    response_model=Flashcard,
    tags=["generation-candidates"],
)
async def accept_candidate(
    candidate_id: str, backend: Backend, req: Optional[AcceptCandidateCommand] = None
) -> Flashcard:
    return await backend.accept_candidate(candidate_id, req or AcceptCandidateCommand())


@router.post(
    "/api/generation-candidates/{candidate_id}/reject",
    response_model=GenerationCandidate,
    tags=["generation-candidates"],
)
async def reject_candidate(candidate_id: str, backend: Backend) -> GenerationCandidate:
    return await backend.reject_candidate(candidate_id)
