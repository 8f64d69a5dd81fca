from __future__ import annotations

from pydantic import BaseModel, Field

from flashdeck.modules.generation.models import GenerationRecord


class GenerationList(BaseModel):
    data: list[GenerationRecord] = Field(default_factory=list)
