from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from flashdeck.core.logging import get_logger

if TYPE_CHECKING:
    from flashdeck.core.store import MemoryBackend, ProcessOutcome
    from flashdeck.modules.generation.generator import CandidateGenerator


logger = get_logger(__name__)

JobCallable = Callable[[], Awaitable[object]]


class BackgroundQueue:
    """Simple in-process async job queue with fixed concurrency.

    The underlying ``asyncio.Queue`` is created on ``start()`` so the queue can
    be started again on a different event loop after ``stop()``.
    """

    def __init__(self, *, concurrency: int = 2) -> None:
        self.concurrency = max(1, int(concurrency))
        self._queue: Optional[asyncio.Queue[tuple[JobCallable, asyncio.Future]]] = None
        self._workers: list[asyncio.Task[None]] = []
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def _worker(self, idx: int) -> None:
        assert self._queue is not None
        while True:
            job, done = await self._queue.get()
            try:
                result = await job()
            except Exception as e:  # noqa: BLE001
                # Best-effort logging; avoid crashing the worker
                logger.error("Worker %d job failed: %s", idx, e)
                if not done.done():
                    done.set_exception(e)
            else:
                if not done.done():
                    done.set_result(result)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._queue = asyncio.Queue()
        for i in range(self.concurrency):
            self._workers.append(asyncio.create_task(self._worker(i)))
        logger.info("Background queue started with %d workers", self.concurrency)

    async def join(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        # Drain queue and cancel workers
        await self.join()
        for t in self._workers:
            t.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self._queue = None
        self._started = False

    def enqueue(self, fn: JobCallable) -> asyncio.Future:
        """Schedule ``fn``; the returned future resolves with its result."""
        if not self._started:
            self.start()
        assert self._queue is not None
        done: asyncio.Future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((fn, done))
        return done


queue = BackgroundQueue(concurrency=2)


def enqueue_generation_processing(
    *,
    backend: "MemoryBackend",
    generation_id: str,
    generator: "CandidateGenerator",
    task_queue: Optional[BackgroundQueue] = None,
) -> "asyncio.Future[ProcessOutcome]":
    """Enqueue a job that moves a generation from PENDING to a terminal status."""

    async def _job() -> "ProcessOutcome":
        return await backend.process_generation(generation_id, generator)

    return (task_queue or queue).enqueue(_job)
