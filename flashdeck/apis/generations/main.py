from __future__ import annotations

import asyncio

from fastapi import APIRouter, Query, status

from flashdeck.apis.deps import Backend, Generator, TaskQueue
from flashdeck.core.logging import get_logger
from flashdeck.core.store import ProcessOutcome
from flashdeck.core.task_queue import enqueue_generation_processing
from flashdeck.modules.generation.models import (
    CreateGenerationCommand,
    CreateGenerationResponse,
    GenerationDetail,
    GenerationRecord,
    ProcessGenerationsResponse,
    UpdateGenerationCommand,
)
from .schemas import GenerationList


router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/api/generations",
    response_model=CreateGenerationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["generations"],
)
async def create_generation(
    req: CreateGenerationCommand, backend: Backend
) -> CreateGenerationResponse:
    return await backend.create_generation(req)


@router.get(
    "/api/generations",
    response_model=GenerationList,
    tags=["generations"],
)
async def list_generations(
    backend: Backend,
    include_finished: bool = Query(default=False, alias="all"),
    limit: int = Query(default=10, ge=1, le=100),
) -> GenerationList:
    rows = await backend.list_generations(include_finished=include_finished, limit=limit)
    return GenerationList(data=rows)


@router.post(
    "/api/generations/process",
    response_model=ProcessGenerationsResponse,
    tags=["generations"],
)
async def process_generations(
    backend: Backend, generator: Generator, task_queue: TaskQueue
) -> ProcessGenerationsResponse:
    ids = await backend.pending_generation_ids()
    jobs = [
        enqueue_generation_processing(
            backend=backend,
            generation_id=generation_id,
            generator=generator,
            task_queue=task_queue,
        )
        for generation_id in ids
    ]
    outcomes = await asyncio.gather(*jobs, return_exceptions=True)
    succeeded = sum(1 for o in outcomes if o == ProcessOutcome.SUCCEEDED)
    failed = sum(1 for o in outcomes if o == ProcessOutcome.FAILED or isinstance(o, Exception))
    if ids:
        logger.info("Processed %d generations (%d ok, %d failed)", len(ids), succeeded, failed)
    return ProcessGenerationsResponse(processed=len(ids), succeeded=succeeded, failed=failed)


@router.get(
    "/api/generations/{generation_id}",
    response_model=GenerationDetail,
    tags=["generations"],
)
async def get_generation(generation_id: str, backend: Backend) -> GenerationDetail:
    return await backend.get_generation(generation_id)


@router.patch(
    "/api/generations/{generation_id}",
    response_model=GenerationRecord,
    tags=["generations"],
)
async def update_generation(
    generation_id: str, req: UpdateGenerationCommand, backend: Backend
) -> GenerationRecord:
    return await backend.cancel_generation(generation_id)
