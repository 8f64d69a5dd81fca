from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from flashdeck.core.logging import get_logger

logger = get_logger(__name__)

JobCallable = Callable[[], Awaitable[None]]


class DelayedTask:
    """A cancellable "run this once after ``delay`` seconds" handle.

    Used for re-arming timers: the callback schedules its successor only after
    its own work resolves, so at most one callback runs per owner.
    """

    def __init__(self, delay: float, fn: JobCallable, *, name: str | None = None) -> None:
        self.delay = max(0.0, float(delay))
        self._fn = fn
        self._task: Optional[asyncio.Task[None]] = asyncio.get_running_loop().create_task(
            self._run(), name=name
        )

    async def _run(self) -> None:
        try:
            await asyncio.sleep(self.delay)
            await self._fn()
        except asyncio.CancelledError:
            return
        except Exception as e:  # noqa: BLE001
            # Callbacks own their error handling; this only keeps the loop clean
            logger.error("Delayed task failed: %s", e)

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        task, self._task = self._task, None
        # A callback re-arming its owner must not cancel itself mid-flight
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def wait(self) -> None:
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            return
