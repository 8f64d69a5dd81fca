from __future__ import annotations

import asyncio
import json
from typing import Optional
from unittest.mock import AsyncMock

import httpx
import pytest

from flashdeck.clients.generations import GenerationsApiClient
from flashdeck.core.storage import MemoryStore
from flashdeck.modules.generation.engine import (
    ACTIVE_GENERATION_KEY,
    GenerationLifecycleEngine,
)
from flashdeck.modules.generation.models import CreateGenerationResponse

ENQUEUED_AT = "2024-01-01T12:00:00Z"


def _record(gen_id: str, status: str) -> dict:
    return {
        "id": gen_id,
        "model": "test-model",
        "status": status,
        "sanitized_input_length": 1500,
        "created_at": ENQUEUED_AT,
        "updated_at": ENQUEUED_AT,
    }


class FakeGenerationsApi:
    """Scripted stand-in for the generations endpoints."""

    def __init__(self, statuses=("running", "succeeded")) -> None:
        self.statuses = list(statuses)
        self.requests: list[httpx.Request] = []
        self.create_response: Optional[httpx.Response] = None
        self.detail_error: Optional[httpx.Response] = None
        self.process_error = False
        self.cancel_error: Optional[httpx.Response] = None
        self.active: list[dict] = []

    def calls(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path, method = request.url.path, request.method
        if method == "POST" and path == "/api/generations":
            if self.create_response is not None:
                return self.create_response
            return httpx.Response(
                202, json={"id": "gen-1", "status": "pending", "enqueued_at": ENQUEUED_AT}
            )
        if method == "POST" and path == "/api/generations/process":
            if self.process_error:
                return httpx.Response(500, json={"error": {"code": "unexpected_error", "message": "boom"}})
            return httpx.Response(200, json={"processed": 1, "succeeded": 1, "failed": 0})
        if method == "GET" and path == "/api/generations":
            return httpx.Response(200, json={"data": self.active})
        if method == "PATCH":
            if self.cancel_error is not None:
                return self.cancel_error
            body = json.loads(request.content)
            assert body == {"status": "cancelled"}
            return httpx.Response(200, json=_record(path.rsplit("/", 1)[-1], "cancelled"))
        if method == "GET":
            if self.detail_error is not None:
                return self.detail_error
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            return httpx.Response(
                200,
                json={
                    "generation": _record(path.rsplit("/", 1)[-1], status),
                    "candidates_summary": {"total": 2 if status == "succeeded" else 0},
                },
            )
        return httpx.Response(404)


@pytest.fixture
def api():
    return FakeGenerationsApi()


@pytest.fixture
def store():
    return MemoryStore()


def _engine(api, store, notifier=None) -> GenerationLifecycleEngine:
    http = httpx.AsyncClient(transport=httpx.MockTransport(api))
    client = GenerationsApiClient("http://test/api", http=http)
    return GenerationLifecycleEngine(
        client, store=store, notifier=notifier, polling_interval=0.01
    )


@pytest.mark.asyncio
async def test_start_polls_until_succeeded(api, store, source_text):
    engine = _engine(api, store)
    seen = []
    engine.subscribe(lambda e: seen.append(e.status))

    await engine.start_generation("test-model", source_text, temperature=0.333)

    assert store.get(ACTIVE_GENERATION_KEY) == "gen-1"
    assert engine.is_polling and not engine.is_loading
    assert engine.generation.status.value == "pending"
    assert engine.generation.temperature == 0.33

    await engine.wait_until_idle(timeout=2)

    assert engine.generation.status.value == "succeeded"
    assert engine.candidates_summary.total == 2
    assert engine.is_polling is False
    assert engine.error is None
    assert store.get(ACTIVE_GENERATION_KEY) is None
    assert api.calls("GET", "/api/generations/gen-1") == 2
    assert "running" in seen
    await engine.aclose()
    assert api.calls("POST", "/api/generations/process") == 1


@pytest.mark.asyncio
async def test_processing_trigger_failure_is_not_an_error(api, store, source_text):
    api.process_error = True
    engine = _engine(api, store)

    await engine.start_generation("test-model", source_text)
    await engine.wait_until_idle(timeout=2)

    assert engine.error is None
    assert engine.generation.status.value == "succeeded"
    await engine.aclose()


@pytest.mark.asyncio
async def test_conflict_reattaches_to_the_stored_generation(api, store, source_text):
    store.set(ACTIVE_GENERATION_KEY, "gen-7")
    api.create_response = httpx.Response(
        409,
        json={"error": {"code": "active_request_exists", "message": "An active generation request is already in progress."}},
    )
    engine = _engine(api, store)

    await engine.start_generation("test-model", source_text)

    assert engine.error is None
    assert engine.generation.id == "gen-7"
    assert engine.is_polling
    await engine.wait_until_idle(timeout=2)
    assert engine.generation.status.value == "succeeded"
    await engine.aclose()


@pytest.mark.asyncio
async def test_conflict_without_marker_looks_up_the_server(api, store, source_text):
    api.create_response = httpx.Response(
        409, json={"error": {"code": "active_request_exists", "message": "busy"}}
    )
    api.active = [_record("gen-9", "running")]
    engine = _engine(api, store)

    await engine.start_generation("test-model", source_text)

    assert engine.error is None
    assert engine.generation.id == "gen-9"
    assert store.get(ACTIVE_GENERATION_KEY) == "gen-9"
    await engine.wait_until_idle(timeout=2)
    await engine.aclose()


@pytest.mark.asyncio
async def test_resume_from_marker_does_not_create(api, store):
    store.set(ACTIVE_GENERATION_KEY, "gen-1")
    engine = _engine(api, store)

    await engine.check_active_generation()

    assert engine.is_polling
    assert engine.generation.status.value == "running"
    await engine.wait_until_idle(timeout=2)
    assert engine.generation.status.value == "succeeded"
    assert api.calls("POST", "/api/generations") == 0
    await engine.aclose()


@pytest.mark.asyncio
async def test_stale_marker_is_cleared(api, store):
    store.set(ACTIVE_GENERATION_KEY, "gone")
    api.detail_error = httpx.Response(
        404, json={"error": {"code": "generation_not_found", "message": "Generation not found"}}
    )
    engine = _engine(api, store)

    await engine.check_active_generation()

    assert store.get(ACTIVE_GENERATION_KEY) is None
    assert engine.generation is None
    assert engine.error is None


@pytest.mark.asyncio
async def test_marker_kept_when_the_server_is_unreachable(store):
    def handler(request):
        raise httpx.ConnectError("connection refused")

    store.set(ACTIVE_GENERATION_KEY, "gen-1")
    engine = _engine(handler, store)

    await engine.check_active_generation()

    assert store.get(ACTIVE_GENERATION_KEY) == "gen-1"
    assert engine.is_polling is False


@pytest.mark.asyncio
async def test_finished_marker_is_cleared(store):
    api = FakeGenerationsApi(statuses=("failed",))
    store.set(ACTIVE_GENERATION_KEY, "gen-1")
    engine = _engine(api, store)

    await engine.check_active_generation()

    assert store.get(ACTIVE_GENERATION_KEY) is None
    assert engine.is_polling is False


@pytest.mark.asyncio
async def test_poll_failure_stops_polling(api, store, source_text):
    api.detail_error = httpx.Response(
        500, json={"error": {"code": "unexpected_error", "message": "database down"}}
    )
    engine = _engine(api, store)

    await engine.start_generation("test-model", source_text)
    await engine.wait_until_idle(timeout=2)
    await asyncio.sleep(0.05)

    assert engine.is_polling is False
    assert engine.error.error.code == "polling_error"
    assert engine.error.error.message == "database down"
    assert api.calls("GET", "/api/generations/gen-1") == 1
    await engine.aclose()


@pytest.mark.asyncio
async def test_start_failure_sets_error(api, store, notifier, source_text):
    api.create_response = httpx.Response(
        500, json={"error": {"code": "unexpected_error", "message": "Internal error"}}
    )
    engine = _engine(api, store, notifier)

    await engine.start_generation("test-model", source_text)

    assert engine.error.error.code == "start_generation_error"
    assert engine.is_loading is False
    assert engine.is_polling is False
    assert store.get(ACTIVE_GENERATION_KEY) is None
    assert notifier.messages == ["Internal error"]


@pytest.mark.asyncio
async def test_short_text_is_rejected_before_any_request(api, store):
    engine = _engine(api, store)

    await engine.start_generation("test-model", "too short")

    assert engine.error.error.code == "start_generation_error"
    assert api.requests == []


@pytest.mark.asyncio
async def test_cancel_confirms_then_stops_polling(store, source_text):
    api = FakeGenerationsApi(statuses=("running",))
    engine = _engine(api, store)
    await engine.start_generation("test-model", source_text)

    await engine.cancel_generation()
    polls = api.calls("GET", "/api/generations/gen-1")
    await asyncio.sleep(0.05)

    assert api.calls("PATCH", "/api/generations/gen-1") == 1
    assert engine.generation.status.value == "cancelled"
    assert engine.is_polling is False
    assert store.get(ACTIVE_GENERATION_KEY) is None
    assert api.calls("GET", "/api/generations/gen-1") == polls
    await engine.aclose()


@pytest.mark.asyncio
async def test_cancel_failure_keeps_polling(store, source_text):
    api = FakeGenerationsApi(statuses=("running",))
    api.cancel_error = httpx.Response(
        409, json={"error": {"code": "invalid_transition", "message": "Already finished"}}
    )
    engine = _engine(api, store)
    await engine.start_generation("test-model", source_text)

    await engine.cancel_generation()

    assert engine.error.error.code == "cancel_generation_error"
    assert engine.is_polling is True
    assert store.get(ACTIVE_GENERATION_KEY) == "gen-1"
    await engine.aclose()


@pytest.mark.asyncio
async def test_reset_clears_everything(store, source_text):
    api = FakeGenerationsApi(statuses=("running",))
    engine = _engine(api, store)
    await engine.start_generation("test-model", source_text)

    engine.reset_generation()

    assert engine.generation is None
    assert engine.generation_id is None
    assert engine.is_polling is False
    assert engine.status == "idle"
    assert store.get(ACTIVE_GENERATION_KEY) is None
    await engine.wait_until_idle(timeout=1)
    await engine.aclose()


@pytest.mark.asyncio
async def test_no_updates_after_close(store, source_text):
    api = FakeGenerationsApi(statuses=("running", "succeeded"))
    engine = _engine(api, store)
    await engine.start_generation("test-model", source_text)

    await engine.aclose()
    await asyncio.sleep(0.05)

    assert engine.generation.status.value == "pending"
    assert api.calls("GET", "/api/generations/gen-1") == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"json": {"unexpected": True}},
        {"text": "<html>maintenance</html>"},
    ],
)
async def test_malformed_status_body_stops_polling(api, store, source_text, body):
    api.detail_error = httpx.Response(200, **body)
    engine = _engine(api, store)

    await engine.start_generation("test-model", source_text)
    await engine.wait_until_idle(timeout=2)

    assert engine.is_polling is False
    assert engine.error.error.code == "polling_error"
    assert store.get(ACTIVE_GENERATION_KEY) == "gen-1"
    assert api.calls("GET", "/api/generations/gen-1") == 1
    await engine.aclose()


@pytest.mark.asyncio
async def test_malformed_marker_check_keeps_the_marker(api, store):
    api.detail_error = httpx.Response(200, json={"unexpected": True})
    store.set(ACTIVE_GENERATION_KEY, "gen-1")
    engine = _engine(api, store)

    await engine.check_active_generation()

    assert store.get(ACTIVE_GENERATION_KEY) == "gen-1"
    assert engine.generation is None
    assert engine.is_polling is False


@pytest.mark.asyncio
async def test_close_while_creating_leaves_nothing_behind(store, source_text):
    client = AsyncMock()

    async def create(command):
        await engine.aclose()
        return CreateGenerationResponse(id="gen-1", enqueued_at=ENQUEUED_AT)

    client.create.side_effect = create
    engine = GenerationLifecycleEngine(client, store=store, polling_interval=0.01)

    await engine.start_generation("test-model", source_text)
    await asyncio.sleep(0.05)

    assert engine.generation is None
    assert store.get(ACTIVE_GENERATION_KEY) is None
    client.process.assert_not_awaited()
    client.get_by_id.assert_not_awaited()
