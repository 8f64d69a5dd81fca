"""In-memory development backend.

Holds generations, candidates, flashcards and logged reviews for a single
fixed development user. Every mutation runs under one ``asyncio.Lock``; the
model call made while processing a generation runs outside it.
"""

from __future__ import annotations

import asyncio
import hashlib
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence, TypeVar

from flashdeck.core.errors import (
    ACTIVE_GENERATION_MESSAGE,
    ApiError,
    CandidateErrorCode,
    ErrorCode,
    FlashcardErrorCode,
    GenerationErrorCode,
    ReviewErrorCode,
)
from flashdeck.core.logging import get_logger
from flashdeck.modules.flashcards.models import (
    CreateFlashcardCommand,
    Flashcard,
    FlashcardOrigin,
    Page,
    PageInfo,
    UpdateFlashcardCommand,
)
from flashdeck.modules.generation.generator import CandidateGenerator, clamp_card
from flashdeck.modules.generation.models import (
    AcceptCandidateCommand,
    CandidatesSummary,
    CandidateStatus,
    CreateGenerationCommand,
    CreateGenerationResponse,
    GenerationCandidate,
    GenerationDetail,
    GenerationRecord,
    GenerationStatus,
    UpdateCandidateCommand,
)
from flashdeck.modules.reviews.models import (
    CreateReviewSessionCommand,
    CreateReviewSessionResponse,
    ReviewSessionEntryCommand,
)

logger = get_logger(__name__)

DEV_USER_ID = "00000000-0000-0000-0000-000000000001"
MAX_PAGE_LIMIT = 100

T = TypeVar("T")


class ProcessOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _normalize_tags(tags: Sequence[str]) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _paginate(items: Sequence[T], cursor: Optional[str], limit: int) -> Page[T]:
    """Offset-backed cursor pagination; the cursor is an opaque offset string."""
    try:
        offset = int(cursor) if cursor else 0
    except ValueError:
        raise ApiError(400, ErrorCode.INVALID_QUERY, "Invalid cursor") from None
    if offset < 0:
        raise ApiError(400, ErrorCode.INVALID_QUERY, "Invalid cursor")
    limit = max(1, min(limit, MAX_PAGE_LIMIT))
    chunk = list(items[offset : offset + limit])
    has_more = offset + limit < len(items)
    return Page(
        data=chunk,
        page=PageInfo(next_cursor=str(offset + limit) if has_more else None, has_more=has_more),
    )


class MemoryBackend:
    def __init__(self, *, user_id: str = DEV_USER_ID) -> None:
        self.user_id = user_id
        self._lock = asyncio.Lock()
        self.generations: dict[str, GenerationRecord] = {}
        self.candidates: dict[str, GenerationCandidate] = {}
        self.flashcards: dict[str, Flashcard] = {}
        self.review_events: list[ReviewSessionEntryCommand] = []

    # Generations -------------------------------------------------------
    async def create_generation(
        self, command: CreateGenerationCommand
    ) -> CreateGenerationResponse:
        async with self._lock:
            if any(g.is_active for g in self.generations.values()):
                raise ApiError(
                    409, GenerationErrorCode.ACTIVE_REQUEST_EXISTS, ACTIVE_GENERATION_MESSAGE
                )
            now = _now()
            text = command.sanitized_input_text
            record = GenerationRecord(
                id=_new_id(),
                user_id=self.user_id,
                model=command.model,
                status=GenerationStatus.PENDING,
                temperature=command.temperature,
                sanitized_input_length=len(text),
                sanitized_input_sha256=hashlib.sha256(text.encode("utf-8")).hexdigest(),
                sanitized_input_text=text,
                created_at=now,
                updated_at=now,
            )
            self.generations[record.id] = record
        logger.info("Generation %s created", record.id)
        return CreateGenerationResponse(id=record.id, enqueued_at=now)

    async def list_generations(
        self, *, include_finished: bool = False, limit: int = 10
    ) -> list[GenerationRecord]:
        async with self._lock:
            rows = [
                g for g in self.generations.values() if include_finished or g.is_active
            ]
        rows.sort(key=lambda g: g.created_at or _now(), reverse=True)
        return rows[: max(1, min(limit, MAX_PAGE_LIMIT))]

    async def get_generation(self, generation_id: str) -> GenerationDetail:
        async with self._lock:
            record = self._require_generation(generation_id)
            return GenerationDetail(
                generation=record,
                candidates_summary=self._summarize(generation_id),
            )

    async def cancel_generation(self, generation_id: str) -> GenerationRecord:
        async with self._lock:
            record = self._require_generation(generation_id)
            if record.is_terminal:
                raise ApiError(
                    409,
                    GenerationErrorCode.INVALID_TRANSITION,
                    f"Cannot cancel a generation that is {record.status.value}",
                )
            now = _now()
            record = record.model_copy(
                update={
                    "status": GenerationStatus.CANCELLED,
                    "completed_at": now,
                    "updated_at": now,
                }
            )
            self.generations[generation_id] = record
        logger.info("Generation %s cancelled", generation_id)
        return record

    async def pending_generation_ids(self) -> list[str]:
        async with self._lock:
            return [
                g.id
                for g in sorted(self.generations.values(), key=lambda g: g.created_at or _now())
                if g.status == GenerationStatus.PENDING
            ]

    async def process_generation(
        self, generation_id: str, generator: CandidateGenerator
    ) -> ProcessOutcome:
        """Run one generation through the model and store its candidates."""
        log = get_logger(__name__, generation_id=generation_id)
        async with self._lock:
            record = self.generations.get(generation_id)
            if record is None or record.status != GenerationStatus.PENDING:
                return ProcessOutcome.SKIPPED
            now = _now()
            record = record.model_copy(
                update={"status": GenerationStatus.RUNNING, "started_at": now, "updated_at": now}
            )
            self.generations[generation_id] = record

        log.info("Processing generation with model %s", record.model)
        try:
            result = await generator(
                record.sanitized_input_text,
                model=record.model,
                temperature=record.temperature,
            )
        except Exception as e:  # noqa: BLE001
            log.error("Generation failed: %s", e)
            await self._finish(generation_id, GenerationStatus.FAILED, error_message=str(e) or "Unknown error")
            return ProcessOutcome.FAILED

        async with self._lock:
            if self.generations[generation_id].status != GenerationStatus.RUNNING:
                log.info("Generation no longer running; dropping model output")
                return ProcessOutcome.SKIPPED
            created = 0
            for card in result.cards:
                front, back = (card.front or "").strip(), (card.back or "").strip()
                if not front or not back:
                    continue
                front, back = clamp_card(front, back)
                now = _now()
                candidate = GenerationCandidate(
                    id=_new_id(),
                    generation_id=generation_id,
                    owner_id=self.user_id,
                    front=front,
                    back=back,
                    suggested_tags=list(card.tags),
                    created_at=now,
                    updated_at=now,
                )
                self.candidates[candidate.id] = candidate
                created += 1
        log.info("Saved %d candidates", created)
        await self._finish(generation_id, GenerationStatus.SUCCEEDED)
        return ProcessOutcome.SUCCEEDED

    async def _finish(
        self,
        generation_id: str,
        status: GenerationStatus,
        *,
        error_message: Optional[str] = None,
    ) -> None:
        async with self._lock:
            record = self.generations[generation_id]
            # A cancellation that landed mid-run wins
            if record.status != GenerationStatus.RUNNING:
                return
            now = _now()
            self.generations[generation_id] = record.model_copy(
                update={
                    "status": status,
                    "completed_at": now,
                    "updated_at": now,
                    "error_message": error_message,
                }
            )

    # Candidates --------------------------------------------------------
    async def list_candidates(
        self,
        generation_id: str,
        *,
        statuses: Optional[Sequence[CandidateStatus]] = None,
        cursor: Optional[str] = None,
        limit: int = 20,
    ) -> Page[GenerationCandidate]:
        async with self._lock:
            self._require_generation(generation_id)
            rows = [
                c
                for c in self.candidates.values()
                if c.generation_id == generation_id
                and (not statuses or c.status in statuses)
            ]
        return _paginate(rows, cursor, limit)

    async def get_candidate(self, candidate_id: str) -> GenerationCandidate:
        async with self._lock:
            return self._require_candidate(candidate_id)

    async def update_candidate(
        self, candidate_id: str, command: UpdateCandidateCommand
    ) -> GenerationCandidate:
        async with self._lock:
            candidate = self._require_candidate(candidate_id)
            if candidate.status not in (CandidateStatus.PROPOSED, CandidateStatus.EDITED):
                raise ApiError(
                    409,
                    CandidateErrorCode.INVALID_TRANSITION,
                    f"Cannot edit a candidate that is {candidate.status.value}",
                )
            changes = command.model_dump(exclude_none=True)
            if not changes:
                raise ApiError(400, ErrorCode.INVALID_BODY, "Nothing to update")
            candidate = candidate.model_copy(
                update={**changes, "status": CandidateStatus.EDITED, "updated_at": _now()}
            )
            self.candidates[candidate_id] = candidate
            return candidate

    async def accept_candidate(
        self, candidate_id: str, command: AcceptCandidateCommand
    ) -> Flashcard:
        async with self._lock:
            candidate = self._require_candidate(candidate_id)
            if candidate.status == CandidateStatus.ACCEPTED:
                raise ApiError(
                    409, CandidateErrorCode.ALREADY_ACCEPTED, "Candidate already accepted"
                )
            if candidate.status == CandidateStatus.REJECTED:
                raise ApiError(
                    409, CandidateErrorCode.INVALID_TRANSITION, "Cannot accept a rejected candidate"
                )
            now = _now()
            origin = (
                FlashcardOrigin.AI_EDITED
                if candidate.status == CandidateStatus.EDITED
                else FlashcardOrigin.AI_FULL
            )
            card = Flashcard(
                id=_new_id(),
                front=candidate.front,
                back=candidate.back,
                origin=origin,
                tags=command.tags if command.tags is not None else list(candidate.suggested_tags),
                category_id=command.category_id,
                created_at=now,
                updated_at=now,
            )
            self.flashcards[card.id] = card
            self.candidates[candidate_id] = candidate.model_copy(
                update={
                    "status": CandidateStatus.ACCEPTED,
                    "accepted_card_id": card.id,
                    "updated_at": now,
                }
            )
        logger.info("Candidate %s accepted as flashcard %s", candidate_id, card.id)
        return card

    async def reject_candidate(self, candidate_id: str) -> GenerationCandidate:
        async with self._lock:
            candidate = self._require_candidate(candidate_id)
            if candidate.status == CandidateStatus.ACCEPTED:
                raise ApiError(
                    409, CandidateErrorCode.ALREADY_ACCEPTED, "Candidate already accepted"
                )
            candidate = candidate.model_copy(
                update={"status": CandidateStatus.REJECTED, "updated_at": _now()}
            )
            self.candidates[candidate_id] = candidate
            return candidate

    # Flashcards --------------------------------------------------------
    async def list_flashcards(
        self,
        *,
        cursor: Optional[str] = None,
        limit: int = 20,
        tags: Optional[Sequence[str]] = None,
        search: Optional[str] = None,
        include_deleted: bool = False,
    ) -> Page[Flashcard]:
        needle = search.lower() if search else None
        async with self._lock:
            rows = [
                c
                for c in self.flashcards.values()
                if (include_deleted or c.deleted_at is None)
                and (not tags or set(tags) & set(c.tags))
                and (
                    needle is None
                    or needle in c.front.lower()
                    or needle in c.back.lower()
                )
            ]
        return _paginate(rows, cursor, limit)

    async def get_flashcard(self, card_id: str) -> Flashcard:
        async with self._lock:
            return self._require_flashcard(card_id)

    async def create_flashcard(self, command: CreateFlashcardCommand) -> Flashcard:
        now = _now()
        card = Flashcard(
            id=_new_id(),
            created_at=now,
            updated_at=now,
            **command.model_dump(),
        )
        async with self._lock:
            self._check_duplicate(card.front, card.back)
            self.flashcards[card.id] = card
        return card

    async def update_flashcard(
        self, card_id: str, command: UpdateFlashcardCommand
    ) -> Flashcard:
        changes = command.model_dump(exclude_none=True)
        if not changes:
            raise ApiError(400, ErrorCode.INVALID_BODY, "Nothing to update")
        if "tags" in changes:
            changes["tags"] = _normalize_tags(changes["tags"])
        async with self._lock:
            card = self._require_flashcard(card_id)
            front, back = changes.get("front", card.front), changes.get("back", card.back)
            if (front, back) != (card.front, card.back):
                self._check_duplicate(front, back, exclude_id=card_id)
            card = card.model_copy(update={**changes, "updated_at": _now()})
            self.flashcards[card_id] = card
            return card

    async def set_flashcard_tags(self, card_id: str, tags: Sequence[str]) -> list[str]:
        """Replace every tag on the card; returns the stored tags."""
        async with self._lock:
            card = self._require_flashcard(card_id)
            card = card.model_copy(update={"tags": _normalize_tags(tags), "updated_at": _now()})
            self.flashcards[card_id] = card
            return list(card.tags)

    async def delete_flashcard(self, card_id: str) -> None:
        async with self._lock:
            card = self._require_flashcard(card_id)
            now = _now()
            self.flashcards[card_id] = card.model_copy(
                update={"deleted_at": now, "updated_at": now}
            )
        logger.info("Flashcard %s soft-deleted", card_id)

    async def restore_flashcard(self, card_id: str) -> Flashcard:
        async with self._lock:
            card = self.flashcards.get(card_id)
            if card is None or card.deleted_at is None:
                raise ApiError(
                    404, FlashcardErrorCode.NOT_FOUND, "Flashcard not found or not deleted"
                )
            card = card.model_copy(update={"deleted_at": None, "updated_at": _now()})
            self.flashcards[card_id] = card
        logger.info("Flashcard %s restored", card_id)
        return card

    # Review sessions ---------------------------------------------------
    async def log_review_session(
        self, command: CreateReviewSessionCommand
    ) -> CreateReviewSessionResponse:
        async with self._lock:
            missing = [
                r.card_id
                for r in command.reviews
                if self._live_flashcard(r.card_id) is None
            ]
            if missing:
                raise ApiError(
                    404,
                    ReviewErrorCode.CARD_NOT_FOUND,
                    "One or more flashcards were not found",
                    {"card_ids": missing},
                )
            self.review_events.extend(command.reviews)
        logger.info(
            "Logged %d reviews for session %s", len(command.reviews), command.session_id
        )
        return CreateReviewSessionResponse(logged=len(command.reviews))

    # Helpers -----------------------------------------------------------
    def _require_generation(self, generation_id: str) -> GenerationRecord:
        record = self.generations.get(generation_id)
        if record is None:
            raise ApiError(404, GenerationErrorCode.NOT_FOUND, "Generation not found")
        return record

    def _require_candidate(self, candidate_id: str) -> GenerationCandidate:
        candidate = self.candidates.get(candidate_id)
        if candidate is None:
            raise ApiError(404, CandidateErrorCode.NOT_FOUND, "Candidate not found")
        return candidate

    def _live_flashcard(self, card_id: str) -> Optional[Flashcard]:
        card = self.flashcards.get(card_id)
        return card if card is not None and card.deleted_at is None else None

    def _require_flashcard(self, card_id: str) -> Flashcard:
        card = self._live_flashcard(card_id)
        if card is None:
            raise ApiError(404, FlashcardErrorCode.NOT_FOUND, "Flashcard not found")
        return card

    def _check_duplicate(
        self, front: str, back: str, *, exclude_id: Optional[str] = None
    ) -> None:
        if any(
            c.id != exclude_id and c.deleted_at is None and c.front == front and c.back == back
            for c in self.flashcards.values()
        ):
            raise ApiError(
                409, FlashcardErrorCode.DUPLICATE_FLASHCARD, "Flashcard already exists"
            )

    def _summarize(self, generation_id: str) -> CandidatesSummary:
        by_status = {s: 0 for s in CandidateStatus}
        for c in self.candidates.values():
            if c.generation_id == generation_id:
                by_status[c.status] += 1
        return CandidatesSummary(total=sum(by_status.values()), by_status=by_status)
