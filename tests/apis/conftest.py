from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from flashdeck.core.store import MemoryBackend
from flashdeck.core.task_queue import BackgroundQueue
from main import create_app


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def make_client(backend):
    clients = []

    def _make(generator):
        app = create_app(backend=backend, generator=generator, task_queue=BackgroundQueue())
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for c in clients:
        c.__exit__(None, None, None)


@pytest.fixture
def client(make_client, generator):
    return make_client(generator)
