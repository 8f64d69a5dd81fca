from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flashdeck.apis.candidates.main import router as candidates_router
from flashdeck.apis.flashcards.main import router as flashcards_router
from flashdeck.apis.generations.main import router as generations_router
from flashdeck.apis.handlers import register_exception_handlers
from flashdeck.apis.review_sessions.main import router as review_sessions_router
from flashdeck.core.config import settings
from flashdeck.core.logging import get_logger, setup_logging
from flashdeck.core.store import MemoryBackend
from flashdeck.core.task_queue import BackgroundQueue
from flashdeck.core.task_queue import queue as _bg_queue
from flashdeck.modules.generation.generator import CandidateGenerator, generate_candidates

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.task_queue.start()
    try:
        yield
    finally:
        await app.state.task_queue.stop()


def create_app(
    *,
    backend: Optional[MemoryBackend] = None,
    generator: Optional[CandidateGenerator] = None,
    task_queue: Optional[BackgroundQueue] = None,
) -> FastAPI:
    app = FastAPI(
        title=settings.app.name, version=settings.app.version, lifespan=lifespan
    )
    app.state.backend = backend or MemoryBackend()
    app.state.generator = generator or generate_candidates
    app.state.task_queue = task_queue or _bg_queue

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:4321"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(generations_router)
    app.include_router(candidates_router)
    app.include_router(flashcards_router)
    app.include_router(review_sessions_router)

    @app.get("/")
    async def root():
        return {
            "status": "ok",
            "app": settings.app.name,
            "version": settings.app.version,
        }

    return app


app = create_app()


if __name__ == "__main__":
    setup_logging()
    try:
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.app.port,
            reload=not settings.app.is_production,
        )
    except Exception as e:
        logger.error("An error occurred when starting the server: %s", e)
