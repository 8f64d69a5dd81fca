"""Pydantic models for AI generations and the candidates they propose."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

MIN_SANITIZED_TEXT_LENGTH = 1000
MAX_SANITIZED_TEXT_LENGTH = 10000
TEMPERATURE_MIN = 0.0
TEMPERATURE_MAX = 2.0


class GenerationStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({GenerationStatus.PENDING, GenerationStatus.RUNNING})
TERMINAL_STATUSES = frozenset(
    {GenerationStatus.SUCCEEDED, GenerationStatus.FAILED, GenerationStatus.CANCELLED}
)


class GenerationRecord(BaseModel):
    """Client mirror of a server-owned generation."""

    id: str
    user_id: str = ""
    model: str
    status: GenerationStatus
    temperature: Optional[float] = None
    prompt_tokens: Optional[int] = None
    sanitized_input_length: int = 0
    sanitized_input_sha256: str = ""
    sanitized_input_text: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class CandidateStatus(str, Enum):
    PROPOSED = "proposed"
    EDITED = "edited"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class CandidatesSummary(BaseModel):
    total: int = 0
    by_status: dict[CandidateStatus, int] = Field(
        default_factory=lambda: {s: 0 for s in CandidateStatus}
    )


class CreateGenerationCommand(BaseModel):
    model: str = Field(..., min_length=1)
    sanitized_input_text: str = Field(
        ...,
        min_length=MIN_SANITIZED_TEXT_LENGTH,
        max_length=MAX_SANITIZED_TEXT_LENGTH,
    )
    temperature: Optional[float] = Field(
        default=None, ge=TEMPERATURE_MIN, le=TEMPERATURE_MAX
    )

    @field_validator("temperature")
    @classmethod
    def _round_temperature(cls, v: Optional[float]) -> Optional[float]:
        return None if v is None else round(v * 100) / 100


class CreateGenerationResponse(BaseModel):
    id: str
    status: Literal["pending"] = "pending"
    enqueued_at: datetime


class UpdateGenerationCommand(BaseModel):
    status: Literal["cancelled"] = "cancelled"

    model_config = {"extra": "forbid"}


class GenerationDetail(BaseModel):
    generation: GenerationRecord
    candidates_summary: CandidatesSummary = Field(default_factory=CandidatesSummary)


class ProcessGenerationsResponse(BaseModel):
    processed: int
    succeeded: int = 0
    failed: int = 0


class GenerationCandidate(BaseModel):
    id: str
    generation_id: str
    owner_id: str = ""
    front: str
    back: str
    status: CandidateStatus = CandidateStatus.PROPOSED
    accepted_card_id: Optional[str] = None
    suggested_tags: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UpdateCandidateCommand(BaseModel):
    front: Optional[str] = Field(default=None, min_length=1, max_length=200)
    back: Optional[str] = Field(default=None, min_length=1, max_length=500)


class AcceptCandidateCommand(BaseModel):
    category_id: Optional[int] = None
    tags: Optional[list[str]] = None


# LLM output -----------------------------------------------------------------


class CandidateCard(BaseModel):
    """Simple front/back pair proposed by the model."""

    front: str
    back: str
    tags: list[str] = Field(default_factory=list)


class CandidateSet(BaseModel):
    cards: list[CandidateCard]
