"""Generation lifecycle engine.

Mirrors a server-owned generation through ``pending -> running -> succeeded |
failed | cancelled``. Creating a generation stores its id under a durable
marker so another process (or a restarted one) can re-attach; status is then
polled with a re-arming timer: the next poll is scheduled only after the
previous one resolved and only while the generation is still active.

Polling failures are terminal for the loop: a broken status endpoint surfaces
as an error instead of being retried behind the user's back.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import ValidationError

from flashdeck.clients.base import ApiClientError
from flashdeck.core.config import settings
from flashdeck.core.errors import (
    ACTIVE_GENERATION_MESSAGE,
    ApiErrorResponse,
    GenerationErrorCode,
)
from flashdeck.core.logging import get_logger
from flashdeck.core.notify import LogNotifier, Notifier
from flashdeck.core.storage import KeyValueStore, MemoryStore
from flashdeck.core.timers import DelayedTask
from flashdeck.modules.generation.models import (
    CandidatesSummary,
    CreateGenerationCommand,
    GenerationRecord,
    GenerationStatus,
)

if TYPE_CHECKING:
    from flashdeck.clients.generations import GenerationsApiClient

ACTIVE_GENERATION_KEY = "activeGenerationId"

Listener = Callable[["GenerationLifecycleEngine"], None]


def _is_active_conflict(e: ApiClientError) -> bool:
    if e.status_code != 409:
        return False
    return (
        e.code == GenerationErrorCode.ACTIVE_REQUEST_EXISTS
        or ACTIVE_GENERATION_MESSAGE.rstrip(".") in e.message
    )


class GenerationLifecycleEngine:
    def __init__(
        self,
        client: GenerationsApiClient,
        *,
        store: Optional[KeyValueStore] = None,
        notifier: Optional[Notifier] = None,
        polling_interval: Optional[float] = None,
    ) -> None:
        gen = settings.generation
        self.client = client
        self.store: KeyValueStore = store if store is not None else MemoryStore()
        self.notifier: Notifier = notifier or LogNotifier()
        self.polling_interval = (
            gen.polling_interval_seconds if polling_interval is None else polling_interval
        )
        self.default_temperature = gen.default_temperature
        self.logger = get_logger(__name__)

        self.generation: Optional[GenerationRecord] = None
        self.candidates_summary: Optional[CandidatesSummary] = None
        self.is_loading = False
        self.is_polling = False
        self.error: Optional[ApiErrorResponse] = None

        self._generation_id: Optional[str] = None
        self._timer: Optional[DelayedTask] = None
        self._trigger: Optional[asyncio.Task[None]] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False
        # Bumped whenever polling stops; in-flight polls from an older epoch are dropped
        self._epoch = 0
        self._listeners: list[Listener] = []

    # Reactive state ----------------------------------------------------
    @property
    def status(self) -> str:
        return self.generation.status.value if self.generation else "idle"

    @property
    def generation_id(self) -> Optional[str]:
        return self._generation_id

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _update(self, **changes) -> None:
        # Nothing may touch state once the engine is torn down
        if self._closed:
            return
        for key, value in changes.items():
            setattr(self, key, value)
        for listener in list(self._listeners):
            listener(self)

    def clear_error(self) -> None:
        self._update(error=None)

    # Operations --------------------------------------------------------
    async def start_generation(
        self,
        model: str,
        sanitized_input_text: str,
        temperature: Optional[float] = None,
    ) -> None:
        if self._closed:
            return
        self._update(is_loading=True, error=None)
        try:
            command = CreateGenerationCommand(
                model=model,
                sanitized_input_text=sanitized_input_text,
                temperature=temperature,
            )
            created = await self.client.create(command)
        except ApiClientError as e:
            if _is_active_conflict(e):
                self.logger.info("Active generation exists; re-attaching")
                await self.check_active_generation(lookup_server=True)
            else:
                self._fail(GenerationErrorCode.START_FAILED, e.message, "Error starting generation")
            self._update(is_loading=False)
            return
        except (ValidationError, ValueError) as e:
            self._fail(GenerationErrorCode.START_FAILED, _error_message(e), "Invalid generation request")
            self._update(is_loading=False)
            return

        if self._closed:
            self.logger.info("Engine closed while generation %s was being created", created.id)
            return

        record = GenerationRecord(
            id=created.id,
            model=command.model,
            status=GenerationStatus(created.status),
            temperature=command.temperature if command.temperature is not None else self.default_temperature,
            sanitized_input_length=len(command.sanitized_input_text),
            sanitized_input_text=command.sanitized_input_text,
            created_at=created.enqueued_at,
            updated_at=created.enqueued_at,
        )
        self._attach(record)
        self.logger.info("Generation %s enqueued", created.id)

        self._trigger = asyncio.create_task(self._trigger_processing())
        self._update(is_polling=True, is_loading=False)
        self._arm(created.id)

    async def poll_generation_status(self, generation_id: str) -> None:
        if self._closed:
            return
        epoch = self._epoch
        try:
            detail = await self.client.get_by_id(generation_id)
        except (ApiClientError, ValidationError, ValueError) as e:
            if epoch != self._epoch:
                return
            message = _error_message(e)
            self.logger.error("Error polling generation status: %s", message)
            self._stop_polling()
            self._update(
                error=ApiErrorResponse.of(
                    GenerationErrorCode.POLLING_FAILED,
                    message or "Failed to poll generation status",
                )
            )
            return

        if self._closed or epoch != self._epoch:
            return
        self._update(generation=detail.generation, candidates_summary=detail.candidates_summary)

        if detail.generation.is_terminal:
            self.logger.info("Generation %s finished: %s", generation_id, detail.generation.status.value)
            self._stop_polling()
            self.store.remove(ACTIVE_GENERATION_KEY)
            return

        if detail.generation.is_active:
            self._arm(generation_id)

    async def check_active_generation(self, *, lookup_server: bool = False) -> None:
        """Re-attach to an in-flight generation.

        The durable marker is consulted first. With ``lookup_server`` (used
        after a creation conflict) the server's list of active generations is
        the fallback when there is no marker.
        """
        if self._closed:
            return
        stored_id = self.store.get(ACTIVE_GENERATION_KEY)
        if stored_id:
            try:
                detail = await self.client.get_by_id(stored_id)
            except (ApiClientError, ValidationError, ValueError) as e:
                self.logger.warning(
                    "Failed to check stored generation %s: %s", stored_id, _error_message(e)
                )
                # Only a client error proves the marker stale
                if (
                    isinstance(e, ApiClientError)
                    and e.status_code is not None
                    and 400 <= e.status_code < 500
                ):
                    self.store.remove(ACTIVE_GENERATION_KEY)
                return
            if detail.generation.is_active:
                self._resume(detail.generation, detail.candidates_summary)
                return
            # Finished while nobody was watching
            self.store.remove(ACTIVE_GENERATION_KEY)

        if not lookup_server:
            return
        try:
            active = await self.client.list(limit=1)
        except (ApiClientError, ValidationError, ValueError) as e:
            self.logger.warning("Failed to look up active generations: %s", _error_message(e))
            return
        if active and active[0].is_active:
            self._resume(active[0], None)

    async def cancel_generation(self) -> None:
        generation_id = self._generation_id
        if not generation_id or self._closed:
            return
        self._update(is_loading=True, error=None)
        try:
            await self.client.update(generation_id)
        except (ApiClientError, ValidationError, ValueError) as e:
            self._fail(GenerationErrorCode.CANCEL_FAILED, _error_message(e), "Error cancelling generation")
            self._update(is_loading=False)
            return

        # Local state changes only after the server confirmed
        self._stop_polling()
        cancelled = (
            self.generation.model_copy(update={"status": GenerationStatus.CANCELLED})
            if self.generation
            else None
        )
        self.store.remove(ACTIVE_GENERATION_KEY)
        self.logger.info("Generation %s cancelled", generation_id)
        self._update(generation=cancelled, is_loading=False)

    def reset_generation(self) -> None:
        self._stop_polling()
        self._generation_id = None
        self.store.remove(ACTIVE_GENERATION_KEY)
        self._update(
            generation=None,
            candidates_summary=None,
            is_loading=False,
            is_polling=False,
            error=None,
        )

    async def wait_until_idle(self, timeout: Optional[float] = None) -> None:
        """Wait until no poll is scheduled or in flight."""
        await asyncio.wait_for(self._idle.wait(), timeout)

    async def aclose(self) -> None:
        """Tear down timers; later responses are dropped."""
        self._stop_polling()
        self._closed = True
        trigger, self._trigger = self._trigger, None
        if trigger and not trigger.done():
            trigger.cancel()
            try:
                await trigger
            except asyncio.CancelledError:
                pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # Internals ---------------------------------------------------------
    def _attach(self, record: GenerationRecord) -> None:
        if self._closed:
            return
        self._generation_id = record.id
        self.logger.bind(generation_id=record.id)
        self.store.set(ACTIVE_GENERATION_KEY, record.id)
        self._update(generation=record)

    def _resume(
        self, record: GenerationRecord, summary: Optional[CandidatesSummary]
    ) -> None:
        self._attach(record)
        self.logger.info("Resuming generation %s (%s)", record.id, record.status.value)
        self._update(candidates_summary=summary, is_polling=True)
        self._arm(record.id)

    def _arm(self, generation_id: str) -> None:
        if self._closed:
            return
        if self._timer:
            self._timer.cancel()
        self._idle.clear()
        self._timer = DelayedTask(
            self.polling_interval,
            lambda: self.poll_generation_status(generation_id),
            name=f"poll-generation-{generation_id}",
        )

    def _stop_polling(self) -> None:
        self._epoch += 1
        if self._timer:
            self._timer.cancel()
            self._timer = None
        self._update(is_polling=False)
        self._idle.set()

    async def _trigger_processing(self) -> None:
        try:
            await self.client.process()
        except (ApiClientError, ValidationError, ValueError) as e:
            self.logger.warning("Failed to trigger generation processing: %s", _error_message(e))

    def _fail(self, code: str, message: str, log_prefix: str) -> None:
        self.logger.error("%s: %s", log_prefix, message)
        self._update(error=ApiErrorResponse.of(code, message))
        self.notifier.error(message)


def _error_message(e: Exception) -> str:
    if isinstance(e, ApiClientError):
        return e.message
    if isinstance(e, ValidationError):
        return _validation_message(e)
    return str(e) or "Unexpected response from server"


def _validation_message(e: ValidationError) -> str:
    first = e.errors()[0] if e.errors() else None
    if not first:
        return "Invalid generation request"
    field = ".".join(str(p) for p in first.get("loc", ()))
    return f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
