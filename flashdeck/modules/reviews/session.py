"""Review session engine.

A session is a single forward pass over a fixed card queue. For each card the
user reveals the answer and grades it; grading appends an entry and advances
the pointer. The advance that exhausts the queue also stamps ``completed_at``
and flips the status to ``completed`` in the same state update.

Guard violations (grading before reveal, advancing past the end, submitting an
empty session) are silent no-ops that return ``False``: they are what stray key
presses look like, not errors.

State machine::

    in-progress --grade/next--> in-progress
    in-progress --last grade--> completed
    completed   --submit------> submitting
    error       --submit------> submitting
    submitting  --ack---------> completed
    submitting  --failure-----> error
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Awaitable, Callable, Optional
from uuid import uuid4

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from flashdeck.clients.base import ApiClientError
from flashdeck.core.config import settings
from flashdeck.core.errors import ApiErrorResponse, ReviewErrorCode
from flashdeck.core.logging import get_logger
from flashdeck.core.notify import LogNotifier, Notifier
from flashdeck.modules.reviews.models import (
    CreateReviewSessionCommand,
    Progress,
    ReviewCard,
    ReviewOutcome,
    ReviewSessionConfig,
    ReviewSessionEntry,
    ReviewSessionEntryCommand,
    ReviewSessionState,
    SessionStatus,
    grade_for,
)

if TYPE_CHECKING:
    from flashdeck.clients.review_sessions import ReviewSessionsApiClient

StateListener = Callable[[ReviewSessionState], None]
Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]

TRANSIENT_ERROR_CODES = frozenset({"network_error", "timeout_error"})


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def is_transient_error(exc: BaseException) -> bool:
    """Errors worth retrying: transport failures, by code or by message."""
    if isinstance(exc, ApiClientError) and exc.code in TRANSIENT_ERROR_CODES:
        return True
    message = str(exc).lower()
    return "network" in message or "fetch" in message


class ReviewSessionEngine:
    def __init__(
        self,
        config: ReviewSessionConfig,
        *,
        client: ReviewSessionsApiClient,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        max_cards: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        allow_skip: Optional[bool] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        review = settings.review
        self.client = client
        self.notifier: Notifier = notifier or LogNotifier()
        self.max_cards = review.max_cards_per_session if max_cards is None else max_cards
        self.max_retries = review.submit_max_retries if max_retries is None else max_retries
        self.retry_delay = (
            review.submit_retry_delay_seconds if retry_delay is None else retry_delay
        )
        self.allow_skip = review.allow_skip if allow_skip is None else allow_skip
        self._clock: Clock = clock or _now_utc
        self._sleep: Sleep = sleep or asyncio.sleep
        self._listeners: list[StateListener] = []

        # Transient per-card UI state; reset on every advance
        self._revealed = False
        self._revealed_at: Optional[datetime] = None

        # Overflow is dropped, not queued for a later session
        cards = tuple(
            ReviewCard(card=card, index=i)
            for i, card in enumerate(config.cards[: self.max_cards])
        )
        started_at = self._clock()
        # Nothing to review: the queue is exhausted from the start
        self._state = ReviewSessionState(
            session_id=str(uuid4()),
            cards=cards,
            current_index=0,
            started_at=started_at,
            completed_at=None if cards else started_at,
            entries=(),
            status=SessionStatus.IN_PROGRESS if cards else SessionStatus.COMPLETED,
        )
        self.logger = get_logger(__name__, session_id=self._state.session_id)
        if len(config.cards) > len(cards):
            self.logger.info(
                "Session capped at %d cards (%d offered)", len(cards), len(config.cards)
            )

    # Reactive state ----------------------------------------------------
    @property
    def state(self) -> ReviewSessionState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_state(self, state: ReviewSessionState) -> None:
        if state.status != self._state.status:
            self.logger.debug("Session %s -> %s", self._state.status.value, state.status.value)
        self._state = state
        self._emit()

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self._state)

    # Derived values ----------------------------------------------------
    @property
    def current_card(self) -> Optional[ReviewCard]:
        s = self._state
        return s.cards[s.current_index] if s.current_index < len(s.cards) else None

    @property
    def is_answer_revealed(self) -> bool:
        return self._state.status == SessionStatus.IN_PROGRESS and self._revealed

    @property
    def progress(self) -> Progress:
        # Graded count, not the raw pointer
        return Progress(current_index=len(self._state.entries), total=len(self._state.cards))

    @property
    def can_submit(self) -> bool:
        return bool(self._state.entries) and self._state.status in (
            SessionStatus.COMPLETED,
            SessionStatus.ERROR,
        )

    @property
    def can_go_next(self) -> bool:
        return (
            self.allow_skip
            and self._state.status == SessionStatus.IN_PROGRESS
            and self.is_answer_revealed
            and self.current_card is not None
        )

    # Operations --------------------------------------------------------
    def reveal_answer(self) -> bool:
        if self._state.status != SessionStatus.IN_PROGRESS or self.current_card is None:
            return False
        if self._revealed:
            # First reveal per card starts the response timer
            return False
        self._revealed = True
        self._revealed_at = self._clock()
        self._emit()
        return True

    def record_outcome(self, outcome: ReviewOutcome | str, grade: Optional[int] = None) -> bool:
        outcome = ReviewOutcome(outcome)
        expected = grade_for(outcome)
        if grade is not None and grade != expected:
            raise ValueError(f"Grade {grade} does not match outcome {outcome.value!r}")

        card = self.current_card
        if self._state.status != SessionStatus.IN_PROGRESS or card is None or not self._revealed:
            return False

        entry = ReviewSessionEntry(
            card_id=card.card.id,
            outcome=outcome,
            grade=expected,
            response_time_ms=self._response_time_ms(),
        )
        self._advance(entry)
        return True

    def go_next(self) -> bool:
        """Advance without grading; only when the session allows skipping."""
        if not self.can_go_next:
            return False
        self._advance(None)
        return True

    async def submit_session(self) -> bool:
        if not self.can_submit:
            return False

        state = self._state
        # Built once so every retry sends the same payload
        command = self._build_command(state)
        self._set_state(state.model_copy(update={"status": SessionStatus.SUBMITTING, "error": None}))
        self.logger.info("Submitting %d reviews", len(command.reviews))

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
                retry=retry_if_exception(is_transient_error),
                before_sleep=self._log_retry,
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    result = await self.client.create(command)
        except ApiClientError as e:
            self._fail_submission(e.message or "Failed to save session")
            return False
        except Exception as e:
            self._fail_submission(str(e) or "Failed to save session")
            raise

        self._set_state(self._state.model_copy(update={"status": SessionStatus.COMPLETED}))
        self.logger.info("Session saved: %d logged", result.logged)
        self.notifier.success(f"Session saved successfully ({result.logged} cards)")
        return True

    # Internals ---------------------------------------------------------
    def _advance(self, entry: Optional[ReviewSessionEntry]) -> None:
        prev = self._state
        next_index = prev.current_index + 1
        update: dict = {"current_index": next_index}
        if entry is not None:
            update["entries"] = prev.entries + (entry,)
        if next_index >= len(prev.cards):
            update["completed_at"] = self._clock()
            update["status"] = SessionStatus.COMPLETED

        self._revealed = False
        self._revealed_at = None
        self._set_state(prev.model_copy(update=update))

    def _response_time_ms(self) -> Optional[int]:
        if self._revealed_at is None:
            return None
        elapsed = (self._clock() - self._revealed_at).total_seconds() * 1000
        # The API only accepts positive response times
        return max(1, int(elapsed))

    def _build_command(self, state: ReviewSessionState) -> CreateReviewSessionCommand:
        return CreateReviewSessionCommand(
            session_id=state.session_id,
            started_at=state.started_at,
            completed_at=state.completed_at or self._clock(),
            reviews=[
                ReviewSessionEntryCommand(
                    card_id=e.card_id,
                    outcome=e.outcome,
                    grade=e.grade,
                    response_time_ms=e.response_time_ms,
                    was_learning_step=e.was_learning_step,
                    payload=e.payload,
                )
                for e in state.entries
            ],
        )

    def _fail_submission(self, message: str) -> None:
        self.logger.error("Session submission failed: %s", message)
        self._set_state(
            self._state.model_copy(
                update={
                    "status": SessionStatus.ERROR,
                    "error": ApiErrorResponse.of(ReviewErrorCode.SUBMIT_FAILED, message),
                }
            )
        )
        self.notifier.error(message)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        self.logger.warning(
            "Transient submit failure (attempt %d): %s; retrying in %.1fs",
            retry_state.attempt_number,
            exc,
            delay,
        )
