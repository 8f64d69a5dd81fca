"""Review player: the presentation controller over a session engine.

The player renders ``PlayerView`` snapshots, routes user actions to the
engine, and keeps keyboard shortcuts enabled only while the session is in
progress.
"""

from __future__ import annotations

from contextlib import aclosing
from typing import TYPE_CHECKING, Optional, Sequence

from pydantic import BaseModel

from flashdeck.core.config import settings
from flashdeck.core.logging import get_logger
from flashdeck.core.notify import Notifier
from flashdeck.modules.flashcards.models import Flashcard
from flashdeck.modules.reviews.keyboard import KeyboardShortcutBinder, KeyEventSource
from flashdeck.modules.reviews.models import (
    Progress,
    ReviewOutcome,
    ReviewSessionConfig,
    ReviewSessionState,
    SessionStatus,
)
from flashdeck.modules.reviews.session import ReviewSessionEngine

if TYPE_CHECKING:
    from flashdeck.clients.flashcards import FlashcardsApiClient

logger = get_logger(__name__)


class PlayerView(BaseModel):
    title: str = "Review Session"
    progress: Progress
    front: Optional[str] = None
    back: Optional[str] = None
    card_id: Optional[str] = None
    show_outcome_buttons: bool = False
    completed: bool = False
    submit_enabled: bool = False
    submit_label: str = "Save Session"
    status: SessionStatus
    error_message: Optional[str] = None


class ReviewPlayer:
    def __init__(
        self,
        engine: ReviewSessionEngine,
        *,
        keys: Optional[KeyEventSource] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.engine = engine
        self.notifier: Notifier = notifier or engine.notifier
        self.keys = keys or KeyEventSource()
        self.binder = KeyboardShortcutBinder(
            self.keys,
            on_reveal=self.reveal_answer,
            on_select_outcome=self.record_outcome,
            on_go_next=self.go_next,
            can_go_next=lambda: self.engine.can_go_next,
        )
        self._unsubscribe = engine.subscribe(self._on_state)
        self._on_state(engine.state)

    def _on_state(self, state: ReviewSessionState) -> None:
        self.binder.enabled = state.status == SessionStatus.IN_PROGRESS

    # Actions -----------------------------------------------------------
    def reveal_answer(self) -> bool:
        return self.engine.reveal_answer()

    def record_outcome(self, outcome: ReviewOutcome, grade: Optional[int] = None) -> bool:
        return self.engine.record_outcome(outcome, grade)

    def go_next(self) -> bool:
        return self.engine.go_next()

    async def submit(self) -> bool:
        try:
            return await self.engine.submit_session()
        except Exception as e:  # noqa: BLE001
            logger.error("Unexpected error submitting session: %s", e)
            self.notifier.error("Failed to submit session", "Please try again later")
            return False

    def close(self) -> None:
        self.binder.close()
        self._unsubscribe()

    # Rendering ---------------------------------------------------------
    def render(self) -> PlayerView:
        engine = self.engine
        state = engine.state
        card = engine.current_card
        revealed = engine.is_answer_revealed
        completed = state.current_index >= len(state.cards)
        submitting = state.status == SessionStatus.SUBMITTING
        return PlayerView(
            progress=engine.progress,
            front=card.card.front if card else None,
            back=card.card.back if card and revealed else None,
            card_id=card.card.id if card else None,
            show_outcome_buttons=card is not None and revealed,
            completed=completed,
            submit_enabled=completed and engine.can_submit and not submitting,
            submit_label="Saving..." if submitting else "Save Session",
            status=state.status,
            error_message=state.error.error.message if state.error else None,
        )


async def build_session_config(
    client: FlashcardsApiClient,
    *,
    limit: Optional[int] = None,
    tags: Optional[Sequence[str]] = None,
    search: Optional[str] = None,
) -> ReviewSessionConfig:
    """Collect cards for a session, following cursors up to the session cap."""
    cap = settings.review.max_cards_per_session if limit is None else limit
    cards: list[Flashcard] = []
    if cap <= 0:
        return ReviewSessionConfig(cards=cards)
    async with aclosing(
        client.iter_all(page_size=min(cap, 50), tags=tags, search=search)
    ) as stream:
        async for card in stream:
            cards.append(card)
            if len(cards) >= cap:
                break
    return ReviewSessionConfig(cards=cards)
