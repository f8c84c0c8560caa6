"""State-changing queue and job endpoints.

Every route runs the mutation guard (as a route dependency) before the queue lookup, so a
denied request never learns whether the queue exists and never reaches the engine.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request
from pydantic import BaseModel, Field

from .. import engine
from ..errors import NotFound
from ..models import ActionTag
from ..pagination import clean_params, parse_int
from ..service import DashboardService, get_dashboard_service


router = APIRouter(prefix="/queues", tags=["actions"])
logger = logging.getLogger(__name__)


class DrainRequest(BaseModel):
    delayed: Any = Field(default=None, description="Also remove delayed jobs (only literal true counts).")


class RetryAllRequest(BaseModel):
    count: Any = Field(default=None, description="Maximum number of failed jobs to retry (omit for all).")


class CleanRequest(BaseModel):
    grace: Any = Field(default=None, description="Minimum job age in milliseconds (non-negative integer).")
    limit: Any = Field(default=None, description="Maximum jobs to remove (default 100, max 1000).")
    type: Any = Field(default=None, description="completed|failed")


def _guarded(action: ActionTag):
    async def _check(request: Request, svc: DashboardService = Depends(get_dashboard_service)) -> None:
        await svc.guard.check(request, action)

    return _check


def _log_action(action: ActionTag, queue: str, **extra: Any) -> None:
    details = " ".join(f"{k}={v}" for k, v in extra.items())
    logger.info("queuedash_action action=%s queue=%s %s", action.value, queue, details)


async def _require_job(queue: Any, job_id: str) -> Any:
    job = await engine.call(queue.get_job, job_id)
    if job is None:
        raise NotFound("Job not found")
    return job


@router.post("/{name}/pause", dependencies=[Depends(_guarded(ActionTag.QUEUE_PAUSE))])
async def pause_queue(name: str, svc: DashboardService = Depends(get_dashboard_service)) -> Dict[str, Any]:
    queue = svc.registry.lookup(name)
    await engine.call(queue.pause)
    _log_action(ActionTag.QUEUE_PAUSE, name)
    return {"status": "paused"}


@router.post("/{name}/resume", dependencies=[Depends(_guarded(ActionTag.QUEUE_RESUME))])
async def resume_queue(name: str, svc: DashboardService = Depends(get_dashboard_service)) -> Dict[str, Any]:
    queue = svc.registry.lookup(name)
    await engine.call(queue.resume)
    _log_action(ActionTag.QUEUE_RESUME, name)
    return {"status": "resumed"}


@router.post("/{name}/obliterate", dependencies=[Depends(_guarded(ActionTag.QUEUE_OBLITERATE))])
async def obliterate_queue(name: str, svc: DashboardService = Depends(get_dashboard_service)) -> Dict[str, Any]:
    queue = svc.registry.lookup(name)
    await engine.call(queue.obliterate, force=True)
    _log_action(ActionTag.QUEUE_OBLITERATE, name)
    return {"status": "obliterated"}


@router.post("/{name}/drain", dependencies=[Depends(_guarded(ActionTag.QUEUE_DRAIN))])
async def drain_queue(
    name: str,
    req: Optional[DrainRequest] = Body(None),
    svc: DashboardService = Depends(get_dashboard_service),
) -> Dict[str, Any]:
    queue = svc.registry.lookup(name)
    delayed = req is not None and req.delayed is True
    await engine.call(queue.drain, delayed)
    _log_action(ActionTag.QUEUE_DRAIN, name, delayed=delayed)
    return {"status": "drained"}


@router.post("/{name}/retry-all", dependencies=[Depends(_guarded(ActionTag.QUEUE_RETRY_ALL))])
async def retry_all_failed(
    name: str,
    req: Optional[RetryAllRequest] = Body(None),
    svc: DashboardService = Depends(get_dashboard_service),
) -> Dict[str, Any]:
    queue = svc.registry.lookup(name)
    count = parse_int(req.count if req is not None else None) or 0
    if count > 0:
        retried = await engine.call(queue.retry_jobs, count=count)
    else:
        retried = await engine.call(queue.retry_jobs)
    _log_action(ActionTag.QUEUE_RETRY_ALL, name, count=count or "all")
    return engine.encode(lambda: {"status": "ok", "retried": engine.count_of(retried)})


@router.post("/{name}/clean", dependencies=[Depends(_guarded(ActionTag.QUEUE_CLEAN))])
async def clean_queue(
    name: str,
    req: Optional[CleanRequest] = Body(None),
    svc: DashboardService = Depends(get_dashboard_service),
) -> Dict[str, Any]:
    queue = svc.registry.lookup(name)
    body = req or CleanRequest()
    params = clean_params(grace=body.grace, limit=body.limit, type=body.type)
    removed = await engine.call(queue.clean, params.grace, params.limit, params.type)
    _log_action(ActionTag.QUEUE_CLEAN, name, grace=params.grace, limit=params.limit, type=params.type)
    return engine.encode(lambda: {"status": "ok", "removed": engine.count_of(removed)})


@router.delete("/{name}/jobs/{job_id}", dependencies=[Depends(_guarded(ActionTag.JOB_REMOVE))])
async def remove_job(name: str, job_id: str, svc: DashboardService = Depends(get_dashboard_service)) -> Dict[str, Any]:
    queue = svc.registry.lookup(name)
    job = await _require_job(queue, job_id)
    await engine.call(job.remove)
    _log_action(ActionTag.JOB_REMOVE, name, job_id=job_id)
    return {"status": "removed"}


@router.post("/{name}/jobs/{job_id}/retry", dependencies=[Depends(_guarded(ActionTag.JOB_RETRY))])
async def retry_job(name: str, job_id: str, svc: DashboardService = Depends(get_dashboard_service)) -> Dict[str, Any]:
    queue = svc.registry.lookup(name)
    job = await _require_job(queue, job_id)
    await engine.call(job.retry)
    _log_action(ActionTag.JOB_RETRY, name, job_id=job_id)
    return {"status": "retried"}


@router.post("/{name}/jobs/{job_id}/promote", dependencies=[Depends(_guarded(ActionTag.JOB_PROMOTE))])
async def promote_job(name: str, job_id: str, svc: DashboardService = Depends(get_dashboard_service)) -> Dict[str, Any]:
    queue = svc.registry.lookup(name)
    job = await _require_job(queue, job_id)
    await engine.call(job.promote)
    _log_action(ActionTag.JOB_PROMOTE, name, job_id=job_id)
    return {"status": "promoted"}
