"""Read-only queue endpoints."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request

from .. import engine
from ..errors import NotFound
from ..models import JobState, created_at, serialize_job
from ..pagination import page_window, parse_state, search_filter
from ..service import DashboardService, get_dashboard_service


router = APIRouter(prefix="/queues", tags=["queues"])


async def _queue_summary(queue: Any) -> Dict[str, Any]:
    counts, paused = await asyncio.gather(
        engine.call(queue.get_job_counts),
        engine.call(queue.is_paused),
    )
    return engine.encode(lambda: {"name": queue.name, "counts": counts, "paused": bool(paused)})


@router.get("")
async def list_queues(svc: DashboardService = Depends(get_dashboard_service)) -> List[Dict[str, Any]]:
    return list(await asyncio.gather(*(_queue_summary(q) for q in svc.registry)))


@router.get("/{name}/jobs")
async def list_jobs(
    name: str,
    state: Optional[str] = Query(None, description="waiting|active|delayed|completed|failed (all states when omitted)"),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    svc: DashboardService = Depends(get_dashboard_service),
) -> List[Dict[str, Any]]:
    queue = svc.registry.lookup(name)
    job_state = parse_state(state)
    window = page_window(start, end)

    if job_state is not None:
        jobs = await engine.call(queue.get_jobs, job_state.value, window.start, window.end)
        return engine.encode(lambda: [serialize_job(j, state=job_state.value) for j in (jobs or [])])

    # The engine paginates per state only: fetch the head of every state, merge, then window.
    async def _fetch(s: JobState) -> List[Dict[str, Any]]:
        jobs = await engine.call(queue.get_jobs, s.value, 0, window.end)
        return engine.encode(lambda: [serialize_job(j, state=s.value) for j in (jobs or [])])

    per_state = await asyncio.gather(*(_fetch(s) for s in JobState))
    merged = [item for items in per_state for item in items]
    merged.sort(key=created_at, reverse=True)
    return merged[window.start : window.end]


@router.get("/{name}/job/{job_id}")
async def get_job(name: str, job_id: str, svc: DashboardService = Depends(get_dashboard_service)) -> Dict[str, Any]:
    queue = svc.registry.lookup(name)
    job = await engine.call(queue.get_job, job_id)
    if job is None:
        raise NotFound("Job not found")
    logs, state = await asyncio.gather(
        engine.call(queue.get_job_logs, job_id),
        engine.call(job.get_state),
    )

    def _detail() -> Dict[str, Any]:
        out = serialize_job(job, state=str(getattr(state, "value", state)))
        out["logs"] = engine.log_lines(logs)
        return out

    return engine.encode(_detail)


@router.get("/{name}/workers")
async def list_workers(name: str, svc: DashboardService = Depends(get_dashboard_service)) -> Any:
    queue = svc.registry.lookup(name)
    workers = await engine.call(queue.get_workers)
    return engine.encode(lambda: workers)


@router.get("/{name}/schedulers")
async def list_schedulers(name: str, svc: DashboardService = Depends(get_dashboard_service)) -> Any:
    queue = svc.registry.lookup(name)
    schedulers = await engine.call(queue.get_repeatable_jobs)
    return engine.encode(lambda: schedulers)


@router.get("/{name}/dlq")
async def list_dead_letter_jobs(
    name: str,
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    svc: DashboardService = Depends(get_dashboard_service),
) -> List[Dict[str, Any]]:
    queue = svc.registry.lookup(name)
    window = page_window(start, end)
    jobs = await engine.call(queue.get_dead_letter_jobs, window.start, window.end)
    return engine.encode(lambda: [serialize_job(j) for j in (jobs or [])])


@router.get("/{name}/metrics")
async def get_metrics(name: str, svc: DashboardService = Depends(get_dashboard_service)) -> Dict[str, Any]:
    queue = svc.registry.lookup(name)
    completed, failed = await asyncio.gather(
        engine.call(queue.get_metrics, "completed"),
        engine.call(queue.get_metrics, "failed"),
    )
    return engine.encode(lambda: {"completed": engine.count_of(completed), "failed": engine.count_of(failed)})


@router.get("/{name}/search")
async def search_jobs(
    name: str,
    request: Request,
    state: Optional[str] = Query(None),
    data: Optional[str] = Query(None, description="JSON object matched against job data (ignored when invalid)."),
    limit: Optional[str] = Query(None),
    svc: DashboardService = Depends(get_dashboard_service),
) -> List[Dict[str, Any]]:
    queue = svc.registry.lookup(name)
    # `name` in the query string is the job name filter; the path `name` is the queue.
    job_name = request.query_params.get("name")
    flt = search_filter(name=job_name, state=state, data=data, limit=limit)
    jobs = await engine.call(queue.search_jobs, flt)
    return engine.encode(lambda: [serialize_job(j) for j in (jobs or [])])
