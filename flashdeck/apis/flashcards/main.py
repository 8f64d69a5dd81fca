from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Query, Response, status

from flashdeck.apis.deps import Backend
from flashdeck.modules.flashcards.models import (
    CreateFlashcardCommand,
    Flashcard,
    Page,
    SetFlashcardTagsCommand,
    UpdateFlashcardCommand,
)


router = APIRouter()


@router.get(
    "/api/flashcards",
    response_model=Page[Flashcard],
    tags=["flashcards"],
)
async def list_flashcards(
    backend: Backend,
    cursor: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=100),
    tags: Annotated[Optional[list[str]], Query(alias="tag[]")] = None,
    search: Optional[str] = Query(default=None, max_length=200),
    include_deleted: bool = False,
) -> Page[Flashcard]:
    return await backend.list_flashcards(
        cursor=cursor,
        limit=limit,
        tags=tags,
        search=search,
        include_deleted=include_deleted,
    )


@router.post(
    "/api/flashcards",
    response_model=Flashcard,
    status_code=status.HTTP_201_CREATED,
    tags=["flashcards"],
)
async def create_flashcard(req: CreateFlashcardCommand, backend: Backend) -> Flashcard:
    return await backend.create_flashcard(req)


@router.get(
    "/api/flashcards/{card_id}",
    response_model=Flashcard,
    tags=["flashcards"],
)
async def get_flashcard(card_id: str, backend: Backend) -> Flashcard:
    return await backend.get_flashcard(card_id)


@router.patch(
    "/api/flashcards/{card_id}",
    response_model=Flashcard,
    tags=["flashcards"],
)
async def update_flashcard(
    card_id: str, req: UpdateFlashcardCommand, backend: Backend
) -> Flashcard:
    return await backend.update_flashcard(card_id, req)


@router.put(
    "/api/flashcards/{card_id}/tags",
    response_model=list[str],
    tags=["flashcards"],
)
async def set_flashcard_tags(
    card_id: str, req: SetFlashcardTagsCommand, backend: Backend
) -> list[str]:
    return await backend.set_flashcard_tags(card_id, req.tags)


@router.delete(
    "/api/flashcards/{card_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    tags=["flashcards"],
)
async def delete_flashcard(card_id: str, backend: Backend) -> Response:
    await backend.delete_flashcard(card_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/api/flashcards/{card_id}/restore",
    response_model=Flashcard,
    tags=["flashcards"],
)
async def restore_flashcard(card_id: str, backend: Backend) -> Flashcard:
    return await backend.restore_flashcard(card_id)
