"""Review session models.

The session aggregate is frozen: engines replace it wholesale with
``model_copy(update=...)`` so every transition is one atomic update.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from flashdeck.core.errors import ApiErrorResponse
from flashdeck.modules.flashcards.models import Flashcard

GRADE_MIN = 0
GRADE_MAX = 5
MAX_REVIEWS_PER_SESSION = 100


class ReviewOutcome(str, Enum):
    AGAIN = "again"
    FAIL = "fail"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


# Monotonic, one grade per outcome; the backend owns what a grade means
OUTCOME_GRADES: dict[ReviewOutcome, int] = {
    ReviewOutcome.AGAIN: 0,
    ReviewOutcome.FAIL: 1,
    ReviewOutcome.HARD: 2,
    ReviewOutcome.GOOD: 3,
    ReviewOutcome.EASY: 4,
}


def grade_for(outcome: ReviewOutcome | str) -> int:
    return OUTCOME_GRADES[ReviewOutcome(outcome)]


class SessionStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in-progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    ERROR = "error"


class ReviewCard(BaseModel):
    model_config = ConfigDict(frozen=True)

    card: Flashcard
    index: int


class ReviewSessionEntry(BaseModel):
    """One grading event."""

    model_config = ConfigDict(frozen=True)

    card_id: str
    outcome: ReviewOutcome
    grade: int = Field(..., ge=GRADE_MIN, le=GRADE_MAX)
    response_time_ms: Optional[int] = None
    was_learning_step: Optional[bool] = None
    payload: Optional[Any] = None


class ReviewSessionConfig(BaseModel):
    """Candidate cards for a session, already filtered upstream."""

    cards: list[Flashcard] = Field(default_factory=list)


class ReviewSessionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    cards: tuple[ReviewCard, ...] = ()
    current_index: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    entries: tuple[ReviewSessionEntry, ...] = ()
    status: SessionStatus = SessionStatus.IDLE
    error: Optional[ApiErrorResponse] = None


class Progress(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_index: int
    total: int


# Wire format ---------------------------------------------------------------


class ReviewSessionEntryCommand(BaseModel):
    card_id: str
    outcome: ReviewOutcome
    grade: int = Field(..., ge=GRADE_MIN, le=GRADE_MAX)
    response_time_ms: Optional[int] = Field(default=None, gt=0)
    prev_interval_days: Optional[int] = Field(default=None, ge=0)
    next_interval_days: Optional[int] = Field(default=None, ge=0)
    was_learning_step: Optional[bool] = None
    payload: Optional[Any] = None


class CreateReviewSessionCommand(BaseModel):
    session_id: str
    started_at: datetime
    completed_at: datetime
    reviews: list[ReviewSessionEntryCommand] = Field(
        ..., min_length=1, max_length=MAX_REVIEWS_PER_SESSION
    )


class CreateReviewSessionResponse(BaseModel):
    logged: int
