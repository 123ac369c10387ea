from __future__ import annotations

import asyncio
from typing import Optional

import redis.asyncio as redis_lib
from redis.exceptions import RedisError

from ..capabilities.interfaces import EventQueue, LivenessStore, WorkerStatus
from ..common.errors import QueueUnavailableError

DEFAULT_QUEUE_KEY = "events"
DEFAULT_HEARTBEAT_KEY = "pulseboard:worker:heartbeat"


def create_redis(url: str) -> redis_lib.Redis:
    """Build a new client with its own connection pool.

    `rediss://` URLs (Upstash and other hosted Redis) switch TLS on; plain
    `redis://` stays unencrypted for local use.
    """
    if not url:
        raise QueueUnavailableError("REDIS_URL is not set")
    return redis_lib.Redis.from_url(url, decode_responses=True)


class RedisEventQueue(EventQueue):
    """LPUSH on the producer side, BRPOP (timeout 0) on the consumer side.

    The consumer's client blocks for as long as the list is empty, so it must not
    be shared with anything else (the heartbeat in particular).
    """

    def __init__(self, client: redis_lib.Redis, key: str = DEFAULT_QUEUE_KEY) -> None:
        self._client = client
        self.key = key

    async def push(self, payload: str) -> None:
        try:
            await self._client.lpush(self.key, payload)
        except (RedisError, OSError) as e:
            raise QueueUnavailableError(f"enqueue failed: {e}", cause=e) from e

    async def pop(self, cancel: asyncio.Event) -> Optional[str]:
        if cancel.is_set():
            return None

        pop_task = asyncio.ensure_future(self._client.brpop([self.key], timeout=0))
        stop_task = asyncio.ensure_future(cancel.wait())
        done, pending = await asyncio.wait({pop_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        for t in pending:
            t.cancel()

        if pop_task not in done:
            # shutdown requested; the item (if any) stays on the list for the next consumer
            return None
        try:
            result = pop_task.result()
        except (RedisError, OSError) as e:
            raise QueueUnavailableError(f"dequeue failed: {e}", cause=e) from e
        if not result:
            return None
        _key, value = result
        return value

    async def ping(self) -> None:
        try:
            await self._client.ping()
        except (RedisError, OSError) as e:
            raise QueueUnavailableError(f"redis unreachable: {e}", cause=e) from e

    async def close(self) -> None:
        await self._client.aclose()


class RedisLiveness(LivenessStore):
    def __init__(self, client: redis_lib.Redis, key: str = DEFAULT_HEARTBEAT_KEY) -> None:
        self._client = client
        self.key = key

    async def beat(self, now_ms: int, ttl_s: int) -> None:
        try:
            await self._client.set(self.key, str(now_ms), ex=ttl_s)
        except (RedisError, OSError) as e:
            raise QueueUnavailableError(f"heartbeat write failed: {e}", cause=e) from e

    async def status(self) -> WorkerStatus:
        try:
            exists, ttl_s, raw = await asyncio.gather(
                self._client.exists(self.key),
                self._client.ttl(self.key),
                self._client.get(self.key),
            )
        except (RedisError, OSError) as e:
            raise QueueUnavailableError(f"heartbeat read failed: {e}", cause=e) from e

        # TTL is -2 for a missing key and -1 for a key without expiry
        active = exists == 1 and ttl_s > 0
        last_beat_at: Optional[int]
        try:
            last_beat_at = int(raw) if raw is not None else None
        except (TypeError, ValueError):
            last_beat_at = None
        return WorkerStatus(
            active=active,
            ttl_remaining=ttl_s if ttl_s > 0 else None,
            last_beat_at=last_beat_at,
        )

    async def close(self) -> None:
        await self._client.aclose()
