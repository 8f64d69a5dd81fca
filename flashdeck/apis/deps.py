from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from flashdeck.core.store import MemoryBackend
from flashdeck.core.task_queue import BackgroundQueue
from flashdeck.modules.generation.generator import CandidateGenerator


def get_backend(request: Request) -> MemoryBackend:
    return request.app.state.backend


def get_generator(request: Request) -> CandidateGenerator:
    return request.app.state.generator


def get_task_queue(request: Request) -> BackgroundQueue:
    return request.app.state.task_queue


Backend = Annotated[MemoryBackend, Depends(get_backend)]
Generator = Annotated[CandidateGenerator, Depends(get_generator)]
TaskQueue = Annotated[BackgroundQueue, Depends(get_task_queue)]
