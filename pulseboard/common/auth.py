from __future__ import annotations

from fastapi import Header, Request
from fastapi.concurrency import run_in_threadpool

from ..events.models import Project
from .errors import ApiError, PulseboardError


async def require_project(request: Request, x_api_key: str | None = Header(default=None)) -> Project:
    """Resolve `x-api-key` to its project (fail closed, before any side effect)."""
    key = (x_api_key or "").strip()
    if not key:
        raise ApiError(code="UNAUTHORIZED", message="API key missing", http_status=401)

    store = request.app.state.store
    try:
        project = await run_in_threadpool(store.resolve_project, key)
    except PulseboardError as e:
        raise ApiError(code=e.code, message="Project lookup failed", http_status=e.http_status) from e

    if project is None:
        raise ApiError(code="FORBIDDEN", message="Invalid API key", http_status=403)
    return project
