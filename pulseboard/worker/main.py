from __future__ import annotations

import asyncio
import signal
import sys
from typing import Optional

import structlog

from ..capabilities.interfaces import EventStore
from ..common.dotenv import load_dotenv_auto
from ..common.errors import PulseboardError
from ..common.log import configure_logging
from ..core.config import ConfigManager, PulseboardConfig
from ..modules.redis_queue import RedisEventQueue, RedisLiveness, create_redis
from ..storage.factory import build_store
from .consumer import QueueConsumer
from .heartbeat import Heartbeat

log = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_CRASHED = 1


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _on_signal(signame: str) -> None:
        log.info("worker.signal_received", signal=signame)
        stop.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _on_signal, sig.name)
        except (NotImplementedError, RuntimeError):
            # e.g. Windows event loops; Ctrl+C still raises KeyboardInterrupt
            pass


async def run_worker(cfg: PulseboardConfig, *, store: Optional[EventStore] = None) -> int:
    """Boot, run until SIGTERM/SIGINT, return the process exit status."""
    log.info("worker.booting", store_backend=cfg.store_backend, queue_key=cfg.queue_key)

    try:
        # Two clients, two pools: BRPOP holds its connection for as long as the
        # list is empty and must never delay a heartbeat write.
        queue = RedisEventQueue(create_redis(cfg.redis_url or ""), key=cfg.queue_key)
        liveness = RedisLiveness(create_redis(cfg.redis_url or ""), key=cfg.heartbeat.key)
    except PulseboardError as e:
        log.error("worker.crashed", phase="startup", error=e.message)
        return EXIT_CRASHED

    try:
        await queue.ping()
        store = store or build_store(cfg)
        await asyncio.to_thread(store.ping)
    except PulseboardError as e:
        log.error("worker.crashed", phase="startup", error=e.message)
        await queue.close()
        await liveness.close()
        if store is not None:
            store.close()
        return EXIT_CRASHED

    heartbeat = Heartbeat(liveness, interval_s=cfg.heartbeat.interval_s, ttl_s=cfg.heartbeat.ttl_s)
    consumer = QueueConsumer(queue=queue, store=store, heartbeat=heartbeat)

    stop = asyncio.Event()
    _install_signal_handlers(stop)

    try:
        await consumer.run(stop)
    except PulseboardError:
        return EXIT_CRASHED
    finally:
        await queue.close()
        await liveness.close()
        store.close()

    log.info("worker.terminated", **consumer.stats())
    return EXIT_OK


def main() -> None:
    load_dotenv_auto(allow_prefixes=("PULSEBOARD_", "REDIS_URL", "SUPABASE_", "NODE_ENV"))
    cfg = ConfigManager().load()
    configure_logging(cfg.log_level, cfg.log_format)
    try:
        code = asyncio.run(run_worker(cfg))
    except KeyboardInterrupt:
        code = EXIT_OK
    sys.exit(code)


if __name__ == "__main__":
    main()
