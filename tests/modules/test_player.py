from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from flashdeck.clients.flashcards import FlashcardsApiClient
from flashdeck.modules.reviews.keyboard import KeyEvent
from flashdeck.modules.reviews.models import (
    CreateReviewSessionResponse,
    ReviewSessionConfig,
    SessionStatus,
)
from flashdeck.modules.reviews.player import ReviewPlayer, build_session_config
from flashdeck.modules.reviews.session import ReviewSessionEngine


def _player(cards, clock, notifier, client=None):
    engine = ReviewSessionEngine(
        ReviewSessionConfig(cards=cards),
        client=client or AsyncMock(),
        notifier=notifier,
        clock=clock,
        sleep=AsyncMock(),
    )
    return ReviewPlayer(engine)


def test_render_hides_the_answer_until_revealed(cards, clock, notifier):
    player = _player(cards, clock, notifier)

    view = player.render()
    assert view.front == "Question 0"
    assert view.back is None
    assert view.show_outcome_buttons is False
    assert view.progress.total == 3

    player.keys.dispatch(KeyEvent(code="Space"))
    view = player.render()
    assert view.back == "Answer 0"
    assert view.show_outcome_buttons is True


def test_keyboard_drives_the_session_to_completion(cards, clock, notifier):
    player = _player(cards, clock, notifier)
    assert player.binder.enabled

    for _ in cards:
        player.keys.dispatch(KeyEvent(code="Space"))
        player.keys.dispatch(KeyEvent(code="Digit4"))

    view = player.render()
    assert view.completed
    assert view.status == SessionStatus.COMPLETED
    assert view.submit_enabled
    assert view.submit_label == "Save Session"
    assert [e.grade for e in player.engine.state.entries] == [3, 3, 3]
    # Shortcuts switch off once the session leaves in-progress
    assert player.binder.enabled is False
    assert player.keys.listener_count == 0


@pytest.mark.asyncio
async def test_submit_reports_success(cards, clock, notifier):
    client = AsyncMock()
    client.create.return_value = CreateReviewSessionResponse(logged=3)
    player = _player(cards, clock, notifier, client)
    for _ in cards:
        player.reveal_answer()
        player.record_outcome("good")

    assert await player.submit() is True
    assert notifier.messages == ["Session saved successfully (3 cards)"]


@pytest.mark.asyncio
async def test_submit_turns_unexpected_errors_into_a_toast(cards, clock, notifier):
    client = AsyncMock()
    client.create.side_effect = RuntimeError("boom")
    player = _player(cards, clock, notifier, client)
    for _ in cards:
        player.reveal_answer()
        player.record_outcome("again")

    assert await player.submit() is False

    last = notifier.items[-1]
    assert (last.message, last.description) == ("Failed to submit session", "Please try again later")
    view = player.render()
    assert view.status == SessionStatus.ERROR
    assert view.error_message == "boom"
    assert view.submit_enabled


@pytest.mark.asyncio
async def test_build_session_config_follows_cursors(card_factory):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        offset = int(request.url.params.get("cursor", "0"))
        data = [card_factory(i).model_dump(mode="json") for i in range(offset, offset + 3)]
        return httpx.Response(
            200, json={"data": data, "page": {"next_cursor": str(offset + 3), "has_more": True}}
        )

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = FlashcardsApiClient("http://test/api", http=http)

    config = await build_session_config(client, limit=4)
    await http.aclose()

    assert [c.id for c in config.cards] == ["card-0", "card-1", "card-2", "card-3"]
    assert [p.get("cursor") for p in seen] == [None, "3"]
    assert seen[0]["limit"] == "4"
