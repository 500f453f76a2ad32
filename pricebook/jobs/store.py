"""Durable job store for bulk pricing jobs.

CRUD over ``pricing_jobs`` plus the state machine guard. Every status change
is a single conditional UPDATE, so two workers racing for the same job cannot
both claim it and a terminal job can never be rewritten. Each successful
mutation is published to the progress notifier.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from redis.exceptions import RedisError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pricebook.db.connection import Database
from pricebook.db.models import PricingJobModel
from pricebook.jobs.errors import JobNotFound, StoreUnavailable
from pricebook.models import (
    ACTIVE_STATUSES,
    JobData,
    JobEvent,
    JobEventType,
    JobProgress,
    JobStatus,
    OperationType,
    PricingJob,
    ResultSummary,
)

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_job_id(job_id: UUID | str) -> UUID:
    """Parse a job id, treating a malformed one as an unknown job."""
    if isinstance(job_id, UUID):
        return job_id
    try:
        return UUID(str(job_id))
    except ValueError as exc:
        raise JobNotFound(job_id) from exc


class JobStore:
    """Job persistence bound to one ``Database`` handle."""

    def __init__(self, database: Database, notifier=None):
        self.database = database
        self.notifier = notifier

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self.database.session() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("job_store_unavailable", operation=operation, error=str(exc))
            raise StoreUnavailable(f"{operation} failed: {exc}") from exc

    async def _publish(self, event_type: JobEventType, job: PricingJob) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.publish(JobEvent(job_id=job.id, event=event_type, job=job))
        except RedisError as exc:
            # The row is already committed; observers can still poll it
            logger.warning(
                "progress_publish_failed", job_id=str(job.id), event=event_type.value, error=str(exc)
            )

    async def create_job(
        self,
        operation_type: OperationType | str,
        organization_id: str,
        total_items: int,
        job_data: JobData | dict[str, Any],
        created_by: str | None = None,
    ) -> UUID:
        """Insert a pending job with zeroed counters and return its id."""
        if total_items < 0:
            raise ValueError("total_items must be non-negative")
        if isinstance(job_data, JobData):
            job_data = job_data.model_dump(mode="json", exclude_none=True)

        now = _utcnow()
        model = PricingJobModel(
            organization_id=organization_id,
            operation_type=OperationType(operation_type).value,
            status=JobStatus.PENDING.value,
            total_items=total_items,
            processed_items=0,
            failed_items=0,
            job_data=job_data,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )

        async with self._session("create_job") as session:
            session.add(model)
            await session.flush()
            job = PricingJob.from_model(model)

        logger.info(
            "pricing_job_created",
            job_id=str(job.id),
            organization_id=organization_id,
            operation_type=job.operation_type.value,
            total_items=total_items,
        )
        await self._publish(JobEventType.CREATED, job)
        return job.id

    async def get_job(self, job_id: UUID | str) -> PricingJob | None:
        try:
            job_uuid = coerce_job_id(job_id)
        except JobNotFound:
            return None

        async with self._session("get_job") as session:
            model = await session.get(PricingJobModel, job_uuid)
            return PricingJob.from_model(model) if model else None

    async def _conditional_update(
        self,
        operation: str,
        job_id: UUID | str,
        allowed_statuses: set[JobStatus] | frozenset[JobStatus],
        values: dict[str, Any],
    ) -> PricingJob | None:
        """UPDATE .. WHERE id = :id AND status IN (:allowed).

        Returns the fresh job, or None when no row matched.
        """
        job_uuid = coerce_job_id(job_id)
        stmt = (
            update(PricingJobModel)
            .where(
                PricingJobModel.id == job_uuid,
                PricingJobModel.status.in_([s.value for s in allowed_statuses]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async with self._session(operation) as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                return None
            model = await session.get(
                PricingJobModel, job_uuid, populate_existing=True
            )
            return PricingJob.from_model(model)

    async def mark_as_processing(self, job_id: UUID | str) -> bool:
        """Claim a pending job.

        Returns:
            False when the job was not pending (already claimed or finished)
        """
        now = _utcnow()
        job = await self._conditional_update(
            "mark_as_processing",
            job_id,
            {JobStatus.PENDING},
            {"status": JobStatus.PROCESSING.value, "started_at": now, "updated_at": now},
        )
        if job is None:
            logger.info("pricing_job_claim_skipped", job_id=str(job_id))
            return False

        logger.info("pricing_job_claimed", job_id=str(job_id))
        await self._publish(JobEventType.PROCESSING, job)
        return True

    async def update_progress(self, job_id: UUID | str, progress: JobProgress) -> bool:
        """Write progress counters for a processing job.

        Monotonicity is the caller's responsibility. ``total`` and
        ``failed_count`` are only written when given.
        """
        values: dict[str, Any] = {
            "processed_items": progress.current,
            "updated_at": _utcnow(),
        }
        if progress.failed_count is not None:
            values["failed_items"] = progress.failed_count
        if progress.total is not None:
            values["total_items"] = progress.total

        job = await self._conditional_update(
            "update_progress", job_id, {JobStatus.PROCESSING}, values
        )
        if job is None:
            logger.warning("pricing_job_progress_ignored", job_id=str(job_id))
            return False

        logger.debug(
            "pricing_job_progress",
            job_id=str(job_id),
            processed=job.processed_items,
            failed=job.failed_items,
            total=job.total_items,
        )
        await self._publish(JobEventType.PROGRESS, job)
        return True

    async def mark_as_completed(self, job_id: UUID | str, result_summary: ResultSummary) -> bool:
        now = _utcnow()
        job = await self._conditional_update(
            "mark_as_completed",
            job_id,
            {JobStatus.PROCESSING},
            {
                "status": JobStatus.COMPLETED.value,
                "result_summary": result_summary.to_json(),
                "completed_at": now,
                "updated_at": now,
            },
        )
        if job is None:
            logger.warning("pricing_job_complete_ignored", job_id=str(job_id))
            return False

        logger.info(
            "pricing_job_completed",
            job_id=str(job_id),
            success_count=result_summary.success_count,
            failed_count=result_summary.failed_count,
        )
        await self._publish(JobEventType.COMPLETED, job)
        return True

    async def mark_as_failed(
        self,
        job_id: UUID | str,
        error_message: str,
        result_summary: ResultSummary | None = None,
    ) -> bool:
        now = _utcnow()
        values: dict[str, Any] = {
            "status": JobStatus.FAILED.value,
            "error_message": error_message,
            "completed_at": now,
            "updated_at": now,
        }
        if result_summary is not None:
            values["result_summary"] = result_summary.to_json()

        job = await self._conditional_update("mark_as_failed", job_id, ACTIVE_STATUSES, values)
        if job is None:
            logger.warning("pricing_job_fail_ignored", job_id=str(job_id))
            return False

        logger.info("pricing_job_failed", job_id=str(job_id), error=error_message)
        await self._publish(JobEventType.FAILED, job)
        return True

    async def get_active_jobs_for_organization(self, organization_id: str) -> list[PricingJob]:
        """Pending and processing jobs, newest first."""
        stmt = (
            select(PricingJobModel)
            .where(
                PricingJobModel.organization_id == organization_id,
                PricingJobModel.status.in_([s.value for s in ACTIVE_STATUSES]),
            )
            .order_by(PricingJobModel.created_at.desc())
        )
        async with self._session("get_active_jobs_for_organization") as session:
            result = await session.execute(stmt)
            return [PricingJob.from_model(model) for model in result.scalars()]
