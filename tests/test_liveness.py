import asyncio
import unittest
from unittest.mock import AsyncMock

from fakes import FakeClock

from pulseboard.capabilities.memory import InMemoryLiveness
from pulseboard.common.errors import QueueUnavailableError
from pulseboard.worker.heartbeat import Heartbeat


class TestInMemoryLiveness(unittest.IsolatedAsyncioTestCase):
    async def test_no_record_means_inactive(self):
        status = await InMemoryLiveness(clock=FakeClock()).status()
        self.assertFalse(status.active)
        self.assertIsNone(status.ttl_remaining)
        self.assertIsNone(status.last_beat_at)

    async def test_active_until_ttl_elapses_and_not_after(self):
        clock = FakeClock()
        liveness = InMemoryLiveness(clock=clock)
        await liveness.beat(1_700_000_000_000, 20)

        status = await liveness.status()
        self.assertTrue(status.active)
        self.assertEqual(status.ttl_remaining, 20)
        self.assertEqual(status.last_beat_at, 1_700_000_000_000)

        clock.advance(19.5)
        self.assertTrue((await liveness.status()).active)

        clock.advance(0.5)
        status = await liveness.status()
        self.assertFalse(status.active)
        self.assertIsNone(status.last_beat_at)

    async def test_one_missed_beat_keeps_worker_alive_two_do_not(self):
        clock = FakeClock()
        liveness = InMemoryLiveness(clock=clock)
        hb = Heartbeat(liveness, interval_s=10, ttl_s=20, clock_ms=lambda: int(clock.now * 1000))

        await hb.beat()
        clock.advance(10)  # beat at t=10 missed
        self.assertTrue((await liveness.status()).active)
        clock.advance(10)  # beat at t=20 missed as well
        self.assertFalse((await liveness.status()).active)


class TestHeartbeat(unittest.IsolatedAsyncioTestCase):
    def test_ttl_must_exceed_interval(self):
        with self.assertRaises(ValueError):
            Heartbeat(InMemoryLiveness(), interval_s=10, ttl_s=10)

    async def test_write_failure_is_swallowed(self):
        liveness = AsyncMock()
        liveness.beat.side_effect = QueueUnavailableError("redis down")
        hb = Heartbeat(liveness, interval_s=0.01, ttl_s=1)
        self.assertFalse(await hb.beat())
        self.assertEqual(hb.failures, 1)

    async def test_unexpected_error_is_swallowed_too(self):
        liveness = AsyncMock()
        liveness.beat.side_effect = RuntimeError("boom")
        hb = Heartbeat(liveness, interval_s=0.01, ttl_s=1)
        self.assertFalse(await hb.beat())

    async def test_run_beats_immediately_then_periodically_and_recovers(self):
        calls = []

        async def flaky_beat(now_ms, ttl_s):
            calls.append(now_ms)
            if len(calls) == 1:
                raise QueueUnavailableError("blip")

        liveness = AsyncMock()
        liveness.beat.side_effect = flaky_beat
        hb = Heartbeat(liveness, interval_s=0.02, ttl_s=1, clock_ms=lambda: 42)
        stop = asyncio.Event()
        task = asyncio.create_task(hb.run(stop))
        await asyncio.sleep(0.09)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        self.assertGreaterEqual(liveness.beat.await_count, 3)
        liveness.beat.assert_any_await(42, 1)
        self.assertEqual(hb.failures, 1)

    async def test_run_stops_promptly(self):
        hb = Heartbeat(InMemoryLiveness(), interval_s=30, ttl_s=60)
        stop = asyncio.Event()
        task = asyncio.create_task(hb.run(stop))
        await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=0.5)


if __name__ == "__main__":
    unittest.main(verbosity=2)
