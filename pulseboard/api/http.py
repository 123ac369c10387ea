from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool

from ..common.auth import require_project
from ..common.errors import ApiError, PulseboardError
from ..core.gateway import IngestionGateway
from ..core.stats import StatsAggregator
from ..events.models import Project
from ..models import (
    ProjectInfo,
    SuccessResult,
    TopEventsResult,
    TrackBatchRequest,
    TrackRequest,
    WorkerStatusResult,
)

router = APIRouter()


def _gateway(request: Request) -> IngestionGateway:
    return request.app.state.gateway


def _stats(request: Request) -> StatsAggregator:
    return request.app.state.stats


@router.get("/health")
def health_check(request: Request):
    # Health endpoint must be public (no auth)
    return {"status": "ok", "env": request.app.state.config.env}


@router.post("/track")
async def track(request: Request, body: TrackRequest, project: Project = Depends(require_project)):
    """Store one event, or only enqueue it when `useQueue` is set.

    A queued answer means "accepted", not "stored": the worker writes it later
    and a failure there never reaches this caller.
    """
    try:
        result = await _gateway(request).submit(project.id, body.body(), use_queue=body.use_queue)
    except PulseboardError as e:
        raise e.to_api_error() from e
    return SuccessResult(queued=result.queued).model_dump()


@router.post("/track/batch")
async def track_batch(request: Request, body: TrackBatchRequest, project: Project = Depends(require_project)):
    # Always the synchronous path; no rollback of items stored before a failure.
    result = await _gateway(request).submit_batch(project.id, [e.body() for e in body.events])
    if not result.ok:
        raise ApiError(
            code="STORE_UNAVAILABLE",
            message=f"{result.failed} of {result.attempted} events could not be stored",
            http_status=503,
            data={"attempted": result.attempted, "stored": result.stored, "failed": result.failed},
        )
    return SuccessResult().model_dump(exclude_none=True)


@router.get("/stats/events")
async def event_stats(
    request: Request,
    from_: Optional[str] = Query(default=None, alias="from"),
    to: Optional[str] = Query(default=None),
    project: Project = Depends(require_project),
):
    try:
        return await run_in_threadpool(_stats(request).raw_events, project.id, from_, to)
    except PulseboardError as e:
        raise e.to_api_error() from e


@router.get("/stats/top-events")
async def top_events(
    request: Request,
    from_: Optional[str] = Query(default=None, alias="from"),
    to: Optional[str] = Query(default=None),
    project: Project = Depends(require_project),
):
    try:
        result = await run_in_threadpool(_stats(request).top_events, project.id, from_, to)
    except PulseboardError as e:
        raise e.to_api_error() from e
    return TopEventsResult.model_validate(result).model_dump()


@router.get("/worker-status")
async def worker_status(request: Request):
    # Public like /health: supervisors and uptime checks hold no project key
    try:
        status = await _gateway(request).worker_status()
    except PulseboardError as e:
        raise e.to_api_error() from e
    return WorkerStatusResult(**status.to_dict()).model_dump()


@router.get("/project-info")
def project_info(project: Project = Depends(require_project)):
    return ProjectInfo(id=project.id, project_id=project.id, name=project.name or "Default Project").model_dump()
