"""Flashcard candidate generator using pydantic-ai.

``generate_candidates`` turns a sanitized source text into a validated
``CandidateSet``. The Gemini provider is imported lazily so the development
backend runs without credentials; anything other than ``google`` falls back
to pydantic-ai's ``TestModel``.
"""

from __future__ import annotations

from typing import Awaitable, Optional, Protocol

from pydantic_ai import Agent

from flashdeck.core.config import settings
from flashdeck.modules.flashcards.models import MAX_BACK_LENGTH, MAX_FRONT_LENGTH
from flashdeck.modules.generation.models import CandidateCard, CandidateSet

BACK_TRUNCATE_LENGTH = 450
MAX_CANDIDATES = 10
DEFAULT_TEMPERATURE = 0.3


class CandidateGenerator(Protocol):
    def __call__(
        self,
        source_text: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Awaitable[CandidateSet]: ...


def _build_model(model_name: Optional[str] = None):
    """Build the configured model (lazy import for the Gemini provider)."""
    gen = settings.generation
    if gen.model_provider != "google":
        from pydantic_ai.models.test import TestModel

        return TestModel()

    from pydantic_ai.models.google import GoogleModel
    from pydantic_ai.providers.google import GoogleProvider

    provider = GoogleProvider(api_key=gen.gemini_api_key)
    return GoogleModel(model_name or gen.model_name, provider=provider)


SYSTEM_PROMPT = (
    "You are an expert in creating high-quality educational flashcards.\n\n"
    "Tasks:\n"
    "- Generate flashcards that are clear, precise, and pedagogically valuable\n"
    "- Each flashcard should contain a question/problem on the front and an "
    "answer/explanation on the back\n"
    "- Add meaningful thematic tags (e.g. docker, kubernetes, react, sql, etc.)\n"
    "- Avoid creating duplicates or very similar flashcards\n"
    "- Adjust difficulty level for IT professionals\n"
    f"- Answers should be concise but complete (max {BACK_TRUNCATE_LENGTH} "
    "characters per back side)\n\n"
    "Formatting requirements:\n"
    f"- Front: specific question or task (max {MAX_FRONT_LENGTH} characters)\n"
    f"- Back: clear, complete answer (max {BACK_TRUNCATE_LENGTH} characters)\n"
    "- Tags: list of appropriate thematic tags"
)


def _build_instruction(source_text: str) -> str:
    return (
        f"Analyze the following source text and generate up to {MAX_CANDIDATES} "
        "high-quality educational flashcards for IT professionals.\n\n"
        f"Source text:\n{source_text}\n\n"
        "Requirements:\n"
        "- Create flashcards that cover key concepts, best practices, and "
        "important details from the text\n"
        "- Each flashcard should be self-contained and educationally valuable\n"
        "- Use tags for thematic categorization\n"
        "- Focus on practical and technical aspects\n"
        "- Generate flashcards in the same language as the source text\n"
        "- Generate as many flashcards as needed to adequately cover the "
        f"content (up to {MAX_CANDIDATES} maximum)"
    )


async def generate_candidates(
    source_text: str,
    *,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
) -> CandidateSet:
    """Generate and normalise flashcard candidates for ``source_text``."""
    agent: Agent[None, CandidateSet] = Agent[None, CandidateSet](
        model=_build_model(model),
        output_type=CandidateSet,
        system_prompt=SYSTEM_PROMPT,
        retries=3,
    )
    res = await agent.run(
        _build_instruction(source_text),
        model_settings={
            "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature
        },
    )
    return _postprocess(res.output)


def clamp_card(front: str, back: str) -> tuple[str, str]:
    """Fit a card into the stored column limits."""
    if len(front) > MAX_FRONT_LENGTH:
        front = front[:MAX_FRONT_LENGTH]
    if len(back) > MAX_BACK_LENGTH:
        back = back[:BACK_TRUNCATE_LENGTH] + "..."
    return front, back


def _postprocess(cs: CandidateSet) -> CandidateSet:
    """Light normalization; the model output is not trusted for length."""
    clean_cards = []
    for c in cs.cards or []:
        front = (c.front or "").strip()
        back = (c.back or "").strip()
        if not front or not back:
            continue
        front, back = clamp_card(front, back)
        tags: list[str] = []
        for t in c.tags or []:
            s = str(t).strip().lower()
            if s and s not in tags:
                tags.append(s)
        clean_cards.append(CandidateCard(front=front, back=back, tags=tags))

    return CandidateSet(cards=clean_cards[:MAX_CANDIDATES])
