"""Shared dependencies for Pricebook web routes.

The per-process handles are built once in the app lifespan and kept on
``app.state``; routes receive them through ``Depends()``.

Usage:
    from fastapi import Depends
    from pricebook.web.dependencies import get_job_store

    @router.get("/pricing-jobs/{job_id}")
    async def job(job_id: str, store=Depends(get_job_store)):
        ...
"""

from __future__ import annotations

from fastapi import Request

from pricebook.db.connection import Database
from pricebook.jobs.processor import BatchPricingProcessor
from pricebook.jobs.store import JobStore


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def get_processor(request: Request) -> BatchPricingProcessor:
    return request.app.state.processor


def get_notifier(request: Request):
    return request.app.state.notifier


def get_queue(request: Request):
    """arq pool when jobs are enqueued on submit, else None."""
    return request.app.state.queue


def get_org_id(request: Request, org: str | None = None) -> str:
    """Organization from the query string, falling back to the configured default."""
    return org or request.app.state.config.org_id
