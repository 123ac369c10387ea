from __future__ import annotations

import asyncio
import enum
from typing import Awaitable, Callable, Optional, Union

import structlog

from ..capabilities.interfaces import EventQueue, EventStore
from ..common.errors import EnvelopeDecodeError, PulseboardError
from ..events.models import EventEnvelope
from .heartbeat import Heartbeat

log = structlog.get_logger(__name__)

# (raw item, reason, error) -> None; reason is "decode" or "store"
DeadLetterHook = Callable[[str, str, BaseException], Union[None, Awaitable[None]]]


class WorkerState(str, enum.Enum):
    BOOTING = "booting"
    RUNNING = "running"
    STOPPING = "stopping"
    CRASHED = "crashed"
    TERMINATED = "terminated"


def log_dead_letter(raw: str, reason: str, error: BaseException) -> None:
    """Default policy: the item is dropped, only a log line remains."""
    log.error("worker.item_dropped", reason=reason, error=str(error), payload=raw[:500])


class QueueConsumer:
    """Consumer loop: blocking pop -> decode -> store, plus an independent heartbeat.

    Delivery is at-least-once up to the pop; a store failure after the pop drops
    the item (handed to the dead-letter hook) instead of stopping the loop.
    """

    def __init__(
        self,
        *,
        queue: EventQueue,
        store: EventStore,
        heartbeat: Optional[Heartbeat] = None,
        dead_letter: DeadLetterHook = log_dead_letter,
    ) -> None:
        self.queue = queue
        self.store = store
        self.heartbeat = heartbeat
        self.dead_letter = dead_letter
        self.state = WorkerState.BOOTING
        self.processed = 0
        self.failed = 0

    def stats(self) -> dict[str, object]:
        return {"state": self.state.value, "processed": self.processed, "failed": self.failed}

    async def _drop(self, raw: str, reason: str, error: BaseException) -> None:
        self.failed += 1
        try:
            outcome = self.dead_letter(raw, reason, error)
            if asyncio.iscoroutine(outcome):
                await outcome
        except Exception as e:  # noqa: BLE001
            log.error("worker.dead_letter_failed", reason=reason, error=str(e))

    async def process(self, raw: str) -> bool:
        """Handle one queue item. Never raises; returns True when the event was stored."""
        try:
            envelope = EventEnvelope.from_json(raw)
        except EnvelopeDecodeError as e:
            await self._drop(raw, "decode", e)
            return False

        try:
            stored = await asyncio.to_thread(self.store.insert_event, envelope)
        except PulseboardError as e:
            await self._drop(raw, "store", e)
            return False
        except Exception as e:  # noqa: BLE001
            # a store backend bug must not take the loop down either
            await self._drop(raw, "store", e)
            return False

        self.processed += 1
        log.debug("event.stored", project_id=stored.project_id, event_name=stored.event_name, event_id=stored.id)
        return True

    async def run(self, stop: asyncio.Event) -> None:
        """Consume until `stop` is set.

        Queue errors (lost connection, etc.) are not absorbed: state becomes
        CRASHED and the error propagates so the process can exit non-zero.
        """
        self.state = WorkerState.RUNNING
        beat_task: Optional[asyncio.Task] = None
        if self.heartbeat is not None:
            beat_task = asyncio.create_task(self.heartbeat.run(stop))
        log.info("worker.running")

        try:
            while not stop.is_set():
                raw = await self.queue.pop(stop)
                if raw is None:
                    continue
                await self.process(raw)
        except asyncio.CancelledError:
            self.state = WorkerState.STOPPING
            raise
        except Exception as e:
            self.state = WorkerState.CRASHED
            log.error("worker.crashed", error=str(e), **self.stats())
            raise
        else:
            self.state = WorkerState.STOPPING
            log.info("worker.stopping", **self.stats())
        finally:
            if beat_task is not None:
                beat_task.cancel()
                try:
                    await beat_task
                except asyncio.CancelledError:
                    pass
            if self.state is not WorkerState.CRASHED:
                self.state = WorkerState.TERMINATED
