from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import structlog

from ..capabilities.interfaces import EventQueue, EventStore, LivenessStore, WorkerStatus
from ..common.errors import PulseboardError, QueueUnavailableError
from ..events.models import EventEnvelope, StoredEvent

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EventBody:
    """Caller-supplied part of an event; the project comes from the API key."""

    event_name: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    properties: Optional[dict[str, Any]] = None

    def envelope(self, project_id: str) -> EventEnvelope:
        return EventEnvelope(
            project_id=project_id,
            event_name=self.event_name,
            user_id=self.user_id,
            session_id=self.session_id,
            properties=self.properties,
        )


@dataclass
class SubmitResult:
    # queued=True only means "accepted onto the queue", never "stored"
    queued: bool
    event: Optional[StoredEvent] = None


@dataclass
class BatchResult:
    attempted: int = 0
    stored: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0


class IngestionGateway:
    """Routes accepted events to the store (sync) or the durable queue (async).

    Project resolution happens before this class is reached, so every call here
    already carries a trusted project_id.
    """

    def __init__(
        self,
        *,
        store: EventStore,
        queue: Optional[EventQueue] = None,
        liveness: Optional[LivenessStore] = None,
    ) -> None:
        self.store = store
        self.queue = queue
        self.liveness = liveness

    async def submit(self, project_id: str, body: EventBody, *, use_queue: bool = False) -> SubmitResult:
        envelope = body.envelope(project_id)
        if use_queue:
            await self._enqueue(envelope)
            return SubmitResult(queued=True)

        stored = await asyncio.to_thread(self.store.insert_event, envelope)
        log.debug("event.stored", project_id=project_id, event_name=envelope.event_name, event_id=stored.id)
        return SubmitResult(queued=False, event=stored)

    async def _enqueue(self, envelope: EventEnvelope) -> None:
        if self.queue is None:
            raise QueueUnavailableError("queued ingestion is not configured (REDIS_URL is not set)")
        await self.queue.push(envelope.to_json())
        log.debug("event.queued", project_id=envelope.project_id, event_name=envelope.event_name)

    async def submit_batch(self, project_id: str, bodies: Sequence[EventBody]) -> BatchResult:
        """Store each body in order on the synchronous path.

        A failure is logged and counted; later items are still attempted and
        earlier ones stay stored.
        """
        result = BatchResult()
        for index, body in enumerate(bodies):
            result.attempted += 1
            try:
                await asyncio.to_thread(self.store.insert_event, body.envelope(project_id))
            except PulseboardError as e:
                result.failed += 1
                result.errors.append(f"{index}: {e.message}")
                log.warning(
                    "event.batch_item_failed",
                    project_id=project_id,
                    index=index,
                    event_name=body.event_name,
                    error=e.message,
                )
                continue
            result.stored += 1
        return result

    async def worker_status(self) -> WorkerStatus:
        if self.liveness is None:
            return WorkerStatus(active=False)
        return await self.liveness.status()
