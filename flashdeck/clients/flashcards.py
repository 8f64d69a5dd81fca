from __future__ import annotations

from typing import AsyncIterator, Optional, Sequence

from flashdeck.clients.base import BaseApiClient
from flashdeck.modules.flashcards.models import (
    CreateFlashcardCommand,
    Flashcard,
    Page,
    SetFlashcardTagsCommand,
    UpdateFlashcardCommand,
)


class FlashcardsApiClient(BaseApiClient):
    async def list(
        self,
        *,
        cursor: Optional[str] = None,
        limit: int = 20,
        tags: Optional[Sequence[str]] = None,
        search: Optional[str] = None,
        include_deleted: bool = False,
    ) -> Page[Flashcard]:
        data = await self.get(
            "/flashcards",
            params={
                "cursor": cursor,
                "limit": limit,
                "tag": list(tags) if tags else None,
                "search": search.strip()[:200] if search and search.strip() else None,
                "include_deleted": True if include_deleted else None,
            },
        )
        return Page[Flashcard].model_validate(data)

    async def iter_all(
        self,
        *,
        page_size: int = 50,
        tags: Optional[Sequence[str]] = None,
        search: Optional[str] = None,
    ) -> AsyncIterator[Flashcard]:
        """Follow ``next_cursor`` until the listing runs out."""
        cursor: Optional[str] = None
        while True:
            page = await self.list(cursor=cursor, limit=page_size, tags=tags, search=search)
            for card in page.data:
                yield card
            if not page.page.has_more or not page.page.next_cursor:
                return
            cursor = page.page.next_cursor

    async def get_by_id(self, card_id: str) -> Flashcard:
        data = await self.get(f"/flashcards/{card_id}")
        return Flashcard.model_validate(data)

    async def create(self, command: CreateFlashcardCommand) -> Flashcard:
        data = await self.post("/flashcards", command)
        return Flashcard.model_validate(data)

    async def update(self, card_id: str, command: UpdateFlashcardCommand) -> Flashcard:
        """Apply the base fields, then replace the tags when ``command.tags`` is set.

        Falls back to a fetch when there was nothing to patch.
        """
        base = command.model_copy(update={"tags": None})
        card: Optional[Flashcard] = None
        if base.model_dump(exclude_none=True):
            card = Flashcard.model_validate(await self.patch(f"/flashcards/{card_id}", base))

        if command.tags is not None:
            tags = await self.set_tags(card_id, command.tags)
            card = card or await self.get_by_id(card_id)
            return card.model_copy(update={"tags": tags})

        return card or await self.get_by_id(card_id)

    async def set_tags(self, card_id: str, tags: Sequence[str]) -> list[str]:
        """Replace every tag on the card."""
        data = await self.put(
            f"/flashcards/{card_id}/tags", SetFlashcardTagsCommand(tags=list(tags))
        )
        return [str(t) for t in data]

    async def delete_flashcard(self, card_id: str) -> None:
        await self.delete(f"/flashcards/{card_id}")

    async def restore(self, card_id: str) -> Flashcard:
        data = await self.post(f"/flashcards/{card_id}/restore")
        return Flashcard.model_validate(data)
