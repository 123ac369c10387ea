from __future__ import annotations

from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.cors import CORSMiddleware

from .api.http import router as http_router
from .capabilities.interfaces import EventQueue, EventStore, LivenessStore
from .common.dotenv import load_dotenv_auto
from .common.errors import ApiError
from .common.log import configure_logging
from .common.trace import new_trace_id
from .core.config import ConfigManager, PulseboardConfig
from .core.gateway import IngestionGateway
from .core.stats import StatsAggregator
from .models import ErrorEnvelope
from .modules.redis_queue import RedisEventQueue, RedisLiveness, create_redis
from .storage.factory import build_store

log = structlog.get_logger(__name__)


def _build_queue(cfg: PulseboardConfig) -> tuple[Optional[EventQueue], Optional[LivenessStore]]:
    """Queue + liveness reader for the API process.

    The API never blocks on Redis, so one client serves both LPUSH and the
    heartbeat reads. Without REDIS_URL queued ingestion is rejected with 503.
    """
    if not cfg.redis_url:
        return None, None
    client = create_redis(cfg.redis_url)
    return RedisEventQueue(client, key=cfg.queue_key), RedisLiveness(client, key=cfg.heartbeat.key)


def _build_limiter(cfg: PulseboardConfig) -> Limiter:
    """One shared budget per client address across every route."""
    per_minute = cfg.rate_limit_per_minute
    return Limiter(
        key_func=get_remote_address,
        application_limits=[f"{per_minute}/minute"] if per_minute else [],
        enabled=per_minute > 0,
        storage_uri="memory://",
    )


def _error_response(status: int, code: str, message: str, data: Optional[dict] = None) -> JSONResponse:
    body = ErrorEnvelope(code=code, message=message, trace_id=new_trace_id(), data=data or {})
    return JSONResponse(status_code=status, content=body.model_dump())


def _rate_limited(_, exc: RateLimitExceeded) -> JSONResponse:
    # must stay sync: SlowAPIMiddleware calls the registered handler without awaiting it
    return _error_response(
        429,
        "RATE_LIMITED",
        "Too many requests, please try again later.",
        {"limit": str(exc.detail)},
    )


def create_app(
    cfg: Optional[PulseboardConfig] = None,
    *,
    store: Optional[EventStore] = None,
    queue: Optional[EventQueue] = None,
    liveness: Optional[LivenessStore] = None,
) -> FastAPI:
    """Composition root for the API process.

    Collaborators can be passed in (tests, embedding); anything missing is
    built from config.
    """
    if cfg is None:
        # Load .env (best-effort). Environment variables set by the process take precedence.
        load_dotenv_auto(allow_prefixes=("PULSEBOARD_", "REDIS_URL", "SUPABASE_", "NODE_ENV", "PORT"))
        cfg = ConfigManager().load()
        configure_logging(cfg.log_level, cfg.log_format)

    app = FastAPI(title="Pulseboard API")

    # rate limiting sits inside CORS so 429 answers still carry CORS headers
    app.state.limiter = _build_limiter(cfg)
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, _rate_limited)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    if store is None:
        store = build_store(cfg)
    if queue is None and liveness is None:
        queue, liveness = _build_queue(cfg)

    # Dependency injection via app.state
    app.state.config = cfg
    app.state.store = store
    app.state.gateway = IngestionGateway(store=store, queue=queue, liveness=liveness)
    app.state.stats = StatsAggregator(store)

    log.info(
        "api.configured",
        env=cfg.env,
        store_backend=cfg.store_backend,
        queue_enabled=queue is not None,
    )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        store.close()
        for handle in (queue, liveness):
            close = getattr(handle, "close", None)
            if close is not None:
                await close()

    @app.exception_handler(ApiError)
    async def api_error_handler(_, exc: ApiError):
        return _error_response(exc.http_status, exc.code, exc.message, exc.data)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_, exc: RequestValidationError):
        errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]
        return _error_response(400, "INVALID_ARGUMENT", "Request validation failed", {"errors": errors})

    app.include_router(http_router, prefix="/api")
    return app
