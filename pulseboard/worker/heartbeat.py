from __future__ import annotations

import asyncio
from typing import Callable

import structlog

from ..capabilities.interfaces import LivenessStore
from ..common.time_util import now_ms

log = structlog.get_logger(__name__)

HEARTBEAT_INTERVAL_S = 10.0
HEARTBEAT_TTL_S = 20


class Heartbeat:
    """Periodically refreshes the liveness record.

    Runs on its own LivenessStore handle: the consume loop's connection sits in a
    blocking pop and cannot carry these writes.
    """

    def __init__(
        self,
        liveness: LivenessStore,
        *,
        interval_s: float = HEARTBEAT_INTERVAL_S,
        ttl_s: int = HEARTBEAT_TTL_S,
        clock_ms: Callable[[], int] = now_ms,
    ) -> None:
        if ttl_s <= interval_s:
            raise ValueError("heartbeat ttl_s must be greater than interval_s")
        self.liveness = liveness
        self.interval_s = interval_s
        self.ttl_s = ttl_s
        self._clock_ms = clock_ms
        self.failures = 0

    async def beat(self) -> bool:
        try:
            await self.liveness.beat(self._clock_ms(), self.ttl_s)
        except Exception as e:  # noqa: BLE001
            # transient; the next interval retries
            self.failures += 1
            log.warning("worker.heartbeat_failed", error=str(e), failures=self.failures)
            return False
        return True

    async def run(self, stop: asyncio.Event) -> None:
        log.info("worker.heartbeat_started", interval_s=self.interval_s, ttl_s=self.ttl_s)
        while not stop.is_set():
            await self.beat()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                continue
