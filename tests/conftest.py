from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from flashdeck.core.notify import RecordingNotifier
from flashdeck.modules.flashcards.models import Flashcard
from flashdeck.modules.generation.models import CandidateCard, CandidateSet

SOURCE_TEXT = (
    "Docker images are built from layered filesystems described by a Dockerfile. "
    * 20
)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += timedelta(milliseconds=ms)


def make_card(i: int, **overrides) -> Flashcard:
    data = {"id": f"card-{i}", "front": f"Question {i}", "back": f"Answer {i}"}
    data.update(overrides)
    return Flashcard(**data)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def cards() -> list[Flashcard]:
    return [make_card(i) for i in range(3)]


@pytest.fixture
def source_text() -> str:
    assert len(SOURCE_TEXT) >= 1000
    return SOURCE_TEXT


async def stub_generator(source_text: str, *, model=None, temperature=None) -> CandidateSet:
    return CandidateSet(
        cards=[
            CandidateCard(front="What is a Docker image?", back="A layered filesystem.", tags=["docker"]),
            CandidateCard(front="What builds an image?", back="x" * 600, tags=["docker"]),
            CandidateCard(front="   ", back="dropped"),
        ]
    )


async def failing_generator(source_text: str, *, model=None, temperature=None) -> CandidateSet:
    raise RuntimeError("model unavailable")


@pytest.fixture
def card_factory():
    return make_card


@pytest.fixture
def generator():
    return stub_generator


@pytest.fixture
def broken_generator():
    return failing_generator
