import asyncio
import unittest
from unittest.mock import ANY, AsyncMock, MagicMock, patch

from fakes import memory_store, wait_until

from pulseboard.common.errors import QueueUnavailableError, StoreError
from pulseboard.core.config import HeartbeatConfig, PulseboardConfig
from pulseboard.worker import main as worker_main

REDIS_URL = "redis://127.0.0.1:6379/0"


def redis_clients(n: int = 2) -> list[AsyncMock]:
    """Fake clients whose BRPOP blocks until cancelled, like an empty list."""

    async def blocks_forever(keys, timeout):
        await asyncio.sleep(3600)

    clients = []
    for _ in range(n):
        client = AsyncMock()
        client.brpop.side_effect = blocks_forever
        clients.append(client)
    return clients


class TestRunWorker(unittest.IsolatedAsyncioTestCase):
    async def test_missing_redis_url_exits_non_zero(self):
        store = memory_store(with_project=False)
        code = await worker_main.run_worker(PulseboardConfig(redis_url=None), store=store)
        self.assertEqual(code, worker_main.EXIT_CRASHED)
        store.close()

    async def test_unreachable_redis_exits_non_zero(self):
        store = memory_store(with_project=False)
        cfg = PulseboardConfig(redis_url=REDIS_URL)
        with patch.object(worker_main.RedisEventQueue, "ping", side_effect=QueueUnavailableError("refused")):
            code = await worker_main.run_worker(cfg, store=store)
        self.assertEqual(code, worker_main.EXIT_CRASHED)
        store.close()

    async def test_store_is_closed_when_its_ping_fails(self):
        store = MagicMock()
        store.ping.side_effect = StoreError("db down")
        clients = redis_clients()
        with patch.object(worker_main, "create_redis", side_effect=clients):
            code = await worker_main.run_worker(PulseboardConfig(redis_url=REDIS_URL), store=store)

        self.assertEqual(code, worker_main.EXIT_CRASHED)
        store.close.assert_called_once()
        for client in clients:
            client.aclose.assert_awaited_once()

    async def test_heartbeat_runs_on_its_own_client_while_brpop_blocks(self):
        consumer_client, heartbeat_client = redis_clients()
        stops = []
        cfg = PulseboardConfig(
            redis_url=REDIS_URL,
            heartbeat=HeartbeatConfig(key="hb", interval_s=0.02, ttl_s=1),
        )
        store = memory_store(with_project=False)

        with patch.object(worker_main, "create_redis", side_effect=[consumer_client, heartbeat_client]) as create, \
                patch.object(worker_main, "_install_signal_handlers", side_effect=stops.append):
            task = asyncio.create_task(worker_main.run_worker(cfg, store=store))
            beating = await wait_until(lambda: heartbeat_client.set.await_count >= 3, timeout=1.0)

            self.assertTrue(beating)
            self.assertEqual(create.call_count, 2)
            self.assertIsNot(consumer_client, heartbeat_client)
            # the blocking pop sits on one client, the beats go through the other
            consumer_client.brpop.assert_awaited_with([cfg.queue_key], timeout=0)
            consumer_client.set.assert_not_called()
            heartbeat_client.brpop.assert_not_called()
            heartbeat_client.set.assert_awaited_with("hb", ANY, ex=1)

            stops[0].set()
            code = await asyncio.wait_for(task, timeout=1)

        self.assertEqual(code, worker_main.EXIT_OK)
        consumer_client.aclose.assert_awaited_once()
        heartbeat_client.aclose.assert_awaited_once()


if __name__ == "__main__":
    unittest.main(verbosity=2)
