from __future__ import annotations

import asyncio
import math
import time
from collections import deque
from typing import Callable, Optional

from .interfaces import EventQueue, LivenessStore, WorkerStatus


class InMemoryEventQueue(EventQueue):
    """Process-local queue with the same blocking/cancellable pop contract as Redis.

    Useful for tests and single-process runs; it is not shared between the API
    and worker processes.
    """

    def __init__(self) -> None:
        self._items: deque[str] = deque()
        self._wakeup = asyncio.Event()

    def __len__(self) -> int:
        return len(self._items)

    async def push(self, payload: str) -> None:
        self._items.append(payload)
        self._wakeup.set()

    async def pop(self, cancel: asyncio.Event) -> Optional[str]:
        while not cancel.is_set():
            if self._items:
                return self._items.popleft()
            self._wakeup.clear()
            waiter = asyncio.ensure_future(self._wakeup.wait())
            stopper = asyncio.ensure_future(cancel.wait())
            _done, pending = await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
            for t in pending:
                t.cancel()
        return None

    async def ping(self) -> None:
        return None


class InMemoryLiveness(LivenessStore):
    """Heartbeat record with TTL semantics, driven by an injectable monotonic clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._value: Optional[int] = None
        self._expires_at: Optional[float] = None
        self.beats = 0

    async def beat(self, now_ms: int, ttl_s: int) -> None:
        self._value = now_ms
        self._expires_at = self._clock() + ttl_s
        self.beats += 1

    async def status(self) -> WorkerStatus:
        if self._value is None or self._expires_at is None:
            return WorkerStatus(active=False)
        remaining = self._expires_at - self._clock()
        if remaining <= 0:
            self._value = None
            self._expires_at = None
            return WorkerStatus(active=False)
        return WorkerStatus(active=True, ttl_remaining=int(math.ceil(remaining)), last_beat_at=self._value)
