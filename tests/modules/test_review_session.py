from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from flashdeck.clients.base import ApiClientError
from flashdeck.modules.reviews.models import (
    CreateReviewSessionResponse,
    ReviewOutcome,
    ReviewSessionConfig,
    SessionStatus,
)
from flashdeck.modules.reviews.session import ReviewSessionEngine, is_transient_error


def _engine(cards, *, client=None, **kw) -> ReviewSessionEngine:
    client = client or AsyncMock()
    kw.setdefault("retry_delay", 0.5)
    kw.setdefault("sleep", AsyncMock())
    return ReviewSessionEngine(ReviewSessionConfig(cards=cards), client=client, **kw)


def _grade_all(engine, clock, outcome=ReviewOutcome.GOOD, ms=1500):
    while engine.current_card is not None:
        assert engine.reveal_answer()
        clock.advance(ms)
        assert engine.record_outcome(outcome)


def test_session_is_capped_at_max_cards(card_factory, clock):
    engine = _engine([card_factory(i) for i in range(150)], clock=clock)

    assert len(engine.state.cards) == 100
    assert engine.state.cards[-1].card.id == "card-99"
    assert engine.progress.total == 100


def test_grading_every_card_completes_the_session(cards, clock):
    engine = _engine(cards, clock=clock)
    statuses = []
    engine.subscribe(lambda s: statuses.append(s.status))

    _grade_all(engine, clock)

    state = engine.state
    assert state.status == SessionStatus.COMPLETED
    assert state.current_index == 3
    assert [e.card_id for e in state.entries] == ["card-0", "card-1", "card-2"]
    assert all(e.grade == 3 and e.response_time_ms == 1500 for e in state.entries)
    assert state.completed_at == clock.now
    assert engine.progress.current_index == 3
    assert engine.current_card is None
    # Completion lands in the same update as the last entry
    assert statuses.count(SessionStatus.COMPLETED) == 1


def test_grading_before_reveal_is_a_noop(cards, clock):
    engine = _engine(cards, clock=clock)

    assert engine.record_outcome(ReviewOutcome.EASY) is False
    assert engine.state.entries == ()
    assert engine.state.current_index == 0


def test_mixed_grades_advance_one_card_at_a_time(cards, clock):
    engine = _engine(cards, clock=clock)
    expected = [
        (ReviewOutcome.GOOD, 3, SessionStatus.IN_PROGRESS),
        (ReviewOutcome.AGAIN, 0, SessionStatus.IN_PROGRESS),
        (ReviewOutcome.EASY, 4, SessionStatus.COMPLETED),
    ]

    for step, (outcome, grade, status) in enumerate(expected, start=1):
        engine.reveal_answer()
        clock.advance(1000)
        assert engine.record_outcome(outcome) is True

        state = engine.state
        assert state.current_index == step
        assert len(state.entries) == step
        assert state.entries[-1].card_id == f"card-{step - 1}"
        assert state.entries[-1].grade == grade
        assert state.status == status

    assert [e.grade for e in engine.state.entries] == [3, 0, 4]
    assert engine.state.completed_at == clock.now


def test_second_grade_without_reveal_changes_nothing(cards, clock):
    engine = _engine(cards, clock=clock)
    engine.reveal_answer()
    assert engine.record_outcome(ReviewOutcome.GOOD) is True
    before = engine.state

    assert engine.record_outcome(ReviewOutcome.GOOD) is False

    assert engine.state is before
    assert engine.state.current_index == 1
    assert len(engine.state.entries) == 1


def test_empty_session_is_completed_from_the_start(clock):
    engine = _engine([], clock=clock)

    assert engine.state.status == SessionStatus.COMPLETED
    assert engine.state.completed_at == engine.state.started_at == clock.now
    assert engine.current_card is None
    assert engine.reveal_answer() is False
    assert engine.can_submit is False


def test_first_reveal_starts_the_timer(cards, clock):
    engine = _engine(cards, clock=clock)

    assert engine.reveal_answer() is True
    clock.advance(500)
    assert engine.reveal_answer() is False
    clock.advance(700)
    engine.record_outcome(ReviewOutcome.HARD)

    assert engine.state.entries[0].response_time_ms == 1200
    assert engine.is_answer_revealed is False


def test_zero_response_time_is_clamped(cards, clock):
    engine = _engine(cards, clock=clock)
    engine.reveal_answer()
    engine.record_outcome(ReviewOutcome.AGAIN)

    assert engine.state.entries[0].response_time_ms == 1
    assert engine.state.entries[0].grade == 0


def test_mismatched_grade_is_rejected(cards, clock):
    engine = _engine(cards, clock=clock)
    engine.reveal_answer()

    with pytest.raises(ValueError):
        engine.record_outcome(ReviewOutcome.GOOD, grade=1)
    assert engine.state.entries == ()


def test_go_next_requires_allow_skip(cards, clock):
    engine = _engine(cards, clock=clock, allow_skip=False)
    engine.reveal_answer()

    assert engine.can_go_next is False
    assert engine.go_next() is False
    assert engine.state.current_index == 0


def test_go_next_skips_without_an_entry(cards, clock):
    engine = _engine(cards, clock=clock, allow_skip=True)
    assert engine.go_next() is False  # not revealed yet

    engine.reveal_answer()
    assert engine.go_next() is True

    assert engine.state.current_index == 1
    assert engine.state.entries == ()
    assert engine.progress.current_index == 0


@pytest.mark.asyncio
async def test_submit_before_completion_is_a_noop(cards, clock):
    client = AsyncMock()
    engine = _engine(cards, client=client, clock=clock)

    assert await engine.submit_session() is False
    client.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_submit_saves_the_session(cards, clock, notifier):
    client = AsyncMock()
    client.create.return_value = CreateReviewSessionResponse(logged=3)
    engine = _engine(cards, client=client, clock=clock, notifier=notifier)
    _grade_all(engine, clock, ReviewOutcome.EASY)
    statuses = []
    engine.subscribe(lambda s: statuses.append(s.status))

    assert await engine.submit_session() is True

    assert statuses == [SessionStatus.SUBMITTING, SessionStatus.COMPLETED]
    command = client.create.await_args.args[0]
    assert command.session_id == engine.state.session_id
    assert [r.grade for r in command.reviews] == [4, 4, 4]
    assert [r.outcome for r in command.reviews] == [ReviewOutcome.EASY] * 3
    assert notifier.messages == ["Session saved successfully (3 cards)"]


@pytest.mark.asyncio
async def test_submit_while_in_flight_is_rejected(cards, clock):
    release = asyncio.Event()

    async def slow_create(command):
        await release.wait()
        return CreateReviewSessionResponse(logged=len(command.reviews))

    client = AsyncMock()
    client.create.side_effect = slow_create
    engine = _engine(cards, client=client, clock=clock)
    _grade_all(engine, clock)

    first = asyncio.create_task(engine.submit_session())
    await asyncio.sleep(0)

    assert engine.state.status == SessionStatus.SUBMITTING
    assert await engine.submit_session() is False

    release.set()
    assert await first is True
    client.create.assert_awaited_once()


@pytest.mark.asyncio
async def test_transient_failures_are_retried_with_the_same_payload(cards, clock):
    client = AsyncMock()
    client.create.side_effect = [
        ApiClientError.network(),
        CreateReviewSessionResponse(logged=3),
    ]
    sleep = AsyncMock()
    engine = _engine(cards, client=client, clock=clock, sleep=sleep, retry_delay=0.5)
    _grade_all(engine, clock)

    assert await engine.submit_session() is True

    assert client.create.await_count == 2
    first, second = (c.args[0] for c in client.create.await_args_list)
    assert first is second
    sleep.assert_awaited_once_with(0.5)
    assert engine.state.status == SessionStatus.COMPLETED


@pytest.mark.asyncio
async def test_exhausted_retries_leave_an_error_state(cards, clock, notifier):
    client = AsyncMock()
    client.create.side_effect = ApiClientError.timeout()
    sleep = AsyncMock()
    engine = _engine(
        cards, client=client, clock=clock, notifier=notifier, sleep=sleep, max_retries=2
    )
    _grade_all(engine, clock)

    assert await engine.submit_session() is False

    assert client.create.await_count == 3
    assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]
    state = engine.state
    assert state.status == SessionStatus.ERROR
    assert state.error.error.code == "submit_failed"
    assert len(state.entries) == 3
    assert engine.can_submit is True
    assert notifier.items[-1].level == "error"


@pytest.mark.asyncio
async def test_non_transient_failure_is_not_retried(cards, clock):
    client = AsyncMock()
    client.create.side_effect = ApiClientError("Invalid body", "invalid_body", 400)
    engine = _engine(cards, client=client, clock=clock)
    _grade_all(engine, clock)

    assert await engine.submit_session() is False

    assert client.create.await_count == 1
    assert engine.state.error.error.message == "Invalid body"


@pytest.mark.asyncio
async def test_resubmit_after_error(cards, clock):
    client = AsyncMock()
    client.create.side_effect = [
        ApiClientError("Server exploded", "unexpected_error", 500),
        CreateReviewSessionResponse(logged=3),
    ]
    engine = _engine(cards, client=client, clock=clock)
    _grade_all(engine, clock)

    assert await engine.submit_session() is False
    assert engine.state.status == SessionStatus.ERROR

    assert await engine.submit_session() is True
    assert engine.state.status == SessionStatus.COMPLETED
    assert engine.state.error is None


@pytest.mark.asyncio
async def test_unexpected_exception_sets_error_and_propagates(cards, clock):
    client = AsyncMock()
    client.create.side_effect = RuntimeError("boom")
    engine = _engine(cards, client=client, clock=clock)
    _grade_all(engine, clock)

    with pytest.raises(RuntimeError):
        await engine.submit_session()
    assert engine.state.status == SessionStatus.ERROR


def test_transient_error_predicate():
    assert is_transient_error(ApiClientError.network())
    assert is_transient_error(ApiClientError.timeout())
    assert is_transient_error(RuntimeError("Failed to fetch"))
    assert not is_transient_error(ApiClientError("Not found", "card_not_found", 404))
