"""Pydantic models for flashcards and cursor-paginated listings."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

MAX_FRONT_LENGTH = 200
MAX_BACK_LENGTH = 500

T = TypeVar("T")


class FlashcardOrigin(str, Enum):
    AI_FULL = "ai-full"
    AI_EDITED = "ai-edited"
    MANUAL = "manual"


class Flashcard(BaseModel):
    """A persisted question/answer card."""

    id: str
    front: str
    back: str
    origin: FlashcardOrigin = FlashcardOrigin.MANUAL
    tags: list[str] = Field(default_factory=list)
    category_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


class CreateFlashcardCommand(BaseModel):
    front: str = Field(..., min_length=1, max_length=MAX_FRONT_LENGTH)
    back: str = Field(..., min_length=1, max_length=MAX_BACK_LENGTH)
    origin: FlashcardOrigin = FlashcardOrigin.MANUAL
    tags: list[str] = Field(default_factory=list)
    category_id: Optional[int] = None


class UpdateFlashcardCommand(BaseModel):
    """Partial edit. The client sends ``tags`` through the tags endpoint."""

    front: Optional[str] = Field(default=None, min_length=1, max_length=MAX_FRONT_LENGTH)
    back: Optional[str] = Field(default=None, min_length=1, max_length=MAX_BACK_LENGTH)
    category_id: Optional[int] = None
    tags: Optional[list[str]] = None


class SetFlashcardTagsCommand(BaseModel):
    tags: list[str] = Field(default_factory=list, max_length=50)


class PageInfo(BaseModel):
    next_cursor: Optional[str] = None
    has_more: bool = False


class Page(BaseModel, Generic[T]):
    data: list[T] = Field(default_factory=list)
    page: PageInfo = Field(default_factory=PageInfo)
