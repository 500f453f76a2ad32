"""Pricing job routes.

Routes:
- POST /pricing-jobs               - Submit an apply-pricing-mode job
- GET  /pricing-jobs/active        - Active jobs for an organization
- POST /pricing-jobs/process       - Run the processor for one job
- GET  /pricing-jobs/{job_id}      - Job snapshot
- GET  /pricing-jobs/{job_id}/events - Server-Sent Events progress feed
"""

from __future__ import annotations

import json
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from redis.exceptions import RedisError

from pricebook.jobs.errors import PricingModeNotFound, StoreUnavailable
from pricebook.jobs.processor import BatchPricingProcessor
from pricebook.jobs.service import submit_pricing_job
from pricebook.jobs.store import JobStore
from pricebook.models import PreviousPrice, PricingJob
from pricebook.web.dependencies import (
    get_database,
    get_job_store,
    get_notifier,
    get_org_id,
    get_processor,
    get_queue,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/pricing-jobs", tags=["pricing-jobs"])

# Seconds between SSE keepalive comments while a job is quiet
KEEPALIVE_SECONDS = 15.0


class SubmitJobRequest(BaseModel):
    """Body for submitting an apply-pricing-mode job."""

    org: str | None = None
    mode_id: UUID
    line_item_ids: list[UUID] | None = None
    previous_prices: list[PreviousPrice] | None = None
    created_by: str | None = None


def _job_payload(job: PricingJob) -> dict[str, Any]:
    payload = job.model_dump(mode="json")
    payload["progress_percent"] = job.progress_percent
    return payload


def _sse(event: str, job: PricingJob) -> str:
    return f"event: {event}\ndata: {json.dumps(_job_payload(job))}\n\n"


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_job(
    body: SubmitJobRequest,
    request: Request,
    store: JobStore = Depends(get_job_store),
    database=Depends(get_database),
    queue=Depends(get_queue),
):
    """Create a pending job (and enqueue it when a queue is configured)."""
    org_id = get_org_id(request, body.org)
    try:
        job_id = await submit_pricing_job(
            store,
            database,
            org_id,
            body.mode_id,
            line_item_ids=body.line_item_ids,
            previous_prices=body.previous_prices,
            created_by=body.created_by,
            queue=queue,
        )
    except PricingModeNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (StoreUnavailable, RedisError) as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    job = await store.get_job(job_id)
    return {"jobId": str(job_id), "job": _job_payload(job)}


@router.get("/active")
async def active_jobs(
    request: Request,
    org: str | None = None,
    store: JobStore = Depends(get_job_store),
):
    """Pending and processing jobs for an organization, newest first."""
    try:
        jobs = await store.get_active_jobs_for_organization(get_org_id(request, org))
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"jobs": [_job_payload(job) for job in jobs]}


@router.post("/process")
async def process_job(
    payload: Any = Body(default=None),
    processor: BatchPricingProcessor = Depends(get_processor),
):
    """Run one job to completion and report its outcome.

    Body: ``{"jobId": "..."}``. 200 with ``{success, jobId, result}`` when the
    job reached a terminal state, 200 with ``{message, jobId}`` when it was not
    ours to process, an error status with ``{error}`` otherwise (including a
    missing ``jobId``).
    """
    job_id = payload.get("jobId") if isinstance(payload, dict) else None
    if not isinstance(job_id, str) or not job_id.strip():
        return JSONResponse(status_code=400, content={"error": "Job ID is required"})

    outcome = await processor.run(job_id)
    return JSONResponse(status_code=outcome.status_code, content=outcome.to_response())


@router.get("/{job_id}")
async def get_job(job_id: str, store: JobStore = Depends(get_job_store)):
    try:
        job = await store.get_job(job_id)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return _job_payload(job)


@router.get("/{job_id}/events")
async def job_events(
    job_id: str,
    request: Request,
    store: JobStore = Depends(get_job_store),
    notifier=Depends(get_notifier),
):
    """Stream job mutations as Server-Sent Events until the job is terminal.

    The first event is a ``snapshot`` of the current row; each later event is
    named after the mutation (``processing``, ``progress``, ``completed``,
    ``failed``).
    """
    try:
        job = await store.get_job(job_id)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")

    async def event_stream():
        # Subscribe before reading the snapshot so no mutation falls in between
        async with notifier.subscribe(job.id) as subscription:
            snapshot = await store.get_job(job.id)
            yield _sse("snapshot", snapshot)
            if snapshot.is_terminal:
                return

            while True:
                if await request.is_disconnected():
                    logger.debug("sse_client_disconnected", job_id=str(job.id))
                    break

                event = await subscription.get(timeout=KEEPALIVE_SECONDS)
                if event is None:
                    if subscription.closed:
                        break
                    yield ": keepalive\n\n"
                    continue

                yield _sse(event.event.value, event.job)
                if event.job.is_terminal:
                    break

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
