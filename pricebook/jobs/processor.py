"""Batch pricing processor.

Consumes one job id and runs it to completion:

    claim -> resolve mode and target items -> batches -> finalize

Batches run strictly one after another. Each batch is a single upsert in
its own transaction, so a failing batch is recorded against the job and the
run moves on to the next one. Progress is written after every batch.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from pricebook.config import JobsConfig
from pricebook.db.connection import Database
from pricebook.db.models import PricingModeModel
from pricebook.jobs.errors import (
    JobNotFound,
    PricingJobError,
    PricingModeNotFound,
    ResetToBaselineFailed,
    StoreUnavailable,
)
from pricebook.jobs.store import JobStore
from pricebook.models import (
    FailedItem,
    JobData,
    JobProgress,
    JobStatus,
    PricingJob,
    ResultSummary,
)
from pricebook.pricing.categories import classify_cost_code
from pricebook.pricing.modes import (
    DEFAULT_PRICE_PRECISION,
    DEFAULT_RESET_MODE_NAME,
    compute_price,
    get_pricing_mode,
    is_reset_mode,
    record_mode_usage,
    resolve_multiplier,
)
from pricebook.pricing.overrides import (
    TargetItem,
    delete_overrides,
    fetch_target_items,
    upsert_overrides,
)

logger = structlog.get_logger()

DEFAULT_BATCH_SIZE = 50


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    NOT_APPLICABLE = "not_applicable"
    ERROR = "error"


@dataclass
class ProcessOutcome:
    """What one invocation of the processor amounted to."""

    kind: OutcomeKind
    job_id: str
    result: ResultSummary | None = None
    status: JobStatus | None = None
    message: str | None = None
    status_code: int = 200

    @classmethod
    def success(cls, job_id: str, result: ResultSummary, status: JobStatus) -> ProcessOutcome:
        return cls(OutcomeKind.SUCCESS, job_id, result=result, status=status)

    @classmethod
    def not_applicable(cls, job_id: str, status: JobStatus | None) -> ProcessOutcome:
        message = "Job is not in processing state"
        if status is not None:
            message = f"{message} (status: {status.value})"
        return cls(OutcomeKind.NOT_APPLICABLE, job_id, status=status, message=message)

    @classmethod
    def error(cls, job_id: str, message: str, status_code: int = 400) -> ProcessOutcome:
        return cls(OutcomeKind.ERROR, job_id, message=message, status_code=status_code)

    @property
    def ok(self) -> bool:
        return self.kind != OutcomeKind.ERROR

    def to_response(self) -> dict[str, Any]:
        if self.kind == OutcomeKind.SUCCESS:
            return {"success": True, "jobId": self.job_id, "result": self.result.to_json()}
        if self.kind == OutcomeKind.NOT_APPLICABLE:
            return {"message": self.message, "jobId": self.job_id}
        return {"error": self.message}


def _error_status_code(exc: Exception) -> int:
    if isinstance(exc, (JobNotFound, PricingModeNotFound)):
        return 404
    if isinstance(exc, StoreUnavailable):
        return 503
    return 400


def _batches(items: Sequence[TargetItem], size: int):
    for start in range(0, len(items), size):
        yield items[start : start + size]


class BatchPricingProcessor:
    """Applies a pricing job's mode to its target items in fixed-size batches.

    Args:
        database: Handle used for catalog reads and override writes
        store: Job store the progress and terminal state go through
        batch_size: Items per upsert; progress is reported once per batch
        reset_mode_name: Name of the mode that deletes overrides instead
        price_precision: Quantum new prices are rounded to
    """

    def __init__(
        self,
        database: Database,
        store: JobStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        reset_mode_name: str = DEFAULT_RESET_MODE_NAME,
        price_precision: Decimal = DEFAULT_PRICE_PRECISION,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.database = database
        self.store = store
        self.batch_size = batch_size
        self.reset_mode_name = reset_mode_name
        self.price_precision = price_precision

    @classmethod
    def from_config(cls, database: Database, store: JobStore, jobs: JobsConfig) -> BatchPricingProcessor:
        return cls(
            database,
            store,
            batch_size=jobs.batch_size,
            reset_mode_name=jobs.reset_mode_name,
            price_precision=jobs.price_precision,
        )

    async def run(self, job_id: UUID | str) -> ProcessOutcome:
        """Process one job. Never raises; failures come back as an error outcome."""
        job_key = str(job_id)
        log = logger.bind(job_id=job_key)

        try:
            return await self._run(job_key, log)
        except JobNotFound as exc:
            log.warning("pricing_job_not_found")
            return ProcessOutcome.error(job_key, str(exc), status_code=404)
        except Exception as exc:
            log.exception("pricing_job_crashed", error=str(exc))
            try:
                await self.store.mark_as_failed(job_key, str(exc))
            except PricingJobError as store_exc:
                log.error("pricing_job_fail_write_failed", error=str(store_exc))
            return ProcessOutcome.error(job_key, str(exc), status_code=_error_status_code(exc))

    async def _run(self, job_key: str, log) -> ProcessOutcome:
        job = await self.store.get_job(job_key)
        if job is None:
            raise JobNotFound(job_key)

        if job.status == JobStatus.PENDING:
            if not await self.store.mark_as_processing(job.id):
                # Lost the claim to another invocation
                return ProcessOutcome.not_applicable(job_key, None)
        elif job.status != JobStatus.PROCESSING:
            log.info("pricing_job_not_applicable", status=job.status.value)
            return ProcessOutcome.not_applicable(job_key, job.status)

        job_data = JobData.model_validate(job.job_data)
        mode, items = await self._resolve(job, job_data)
        total = len(items)

        log = log.bind(mode=mode.name, total_items=total)
        log.info("pricing_job_started", batch_size=self.batch_size)

        # Counters restart from zero: a re-invoked job reprocesses every item
        await self.store.update_progress(
            job.id, JobProgress(current=0, failed_count=0, total=total)
        )

        if is_reset_mode(mode, self.reset_mode_name):
            summary = await self._reset_to_baseline(job, job_data, total, log)
        else:
            summary = await self._apply_multipliers(
                job, job_data, dict(mode.adjustments or {}), items, log
            )

        return await self._finalize(job, summary, total, log)

    async def _resolve(
        self, job: PricingJob, job_data: JobData
    ) -> tuple[PricingModeModel, list[TargetItem]]:
        try:
            async with self.database.session() as session:
                mode = await get_pricing_mode(session, job_data.mode_id)
                if mode is None:
                    raise PricingModeNotFound(job_data.mode_id)
                items = await fetch_target_items(
                    session, job.organization_id, job_data.line_item_ids
                )
                return mode, items
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Could not resolve pricing job inputs: {exc}") from exc

    async def _reset_to_baseline(
        self, job: PricingJob, job_data: JobData, total: int, log
    ) -> ResultSummary:
        try:
            async with self.database.session() as session:
                deleted = await delete_overrides(
                    session, job.organization_id, job_data.line_item_ids
                )
        except SQLAlchemyError as exc:
            log.error("reset_to_baseline_failed", error=str(exc))
            await self.store.update_progress(
                job.id, JobProgress(current=0, failed_count=total, total=total)
            )
            raise ResetToBaselineFailed(f"Reset to baseline failed: {exc}") from exc

        log.info("reset_to_baseline_done", overrides_deleted=deleted)
        await self.store.update_progress(
            job.id, JobProgress(current=total, failed_count=0, total=total)
        )
        return ResultSummary(success_count=total, failed_count=0)

    async def _apply_multipliers(
        self,
        job: PricingJob,
        job_data: JobData,
        adjustments: dict[str, Any],
        items: list[TargetItem],
        log,
    ) -> ResultSummary:
        processed = 0
        failed = 0
        failures: list[FailedItem] = []
        total = len(items)

        for batch_index, batch in enumerate(_batches(items, self.batch_size)):
            prices = []
            for item in batch:
                multiplier = resolve_multiplier(adjustments, classify_cost_code(item.cost_code))
                new_price = compute_price(item.base_price, multiplier, self.price_precision)
                prices.append((item.id, new_price, multiplier))

            try:
                async with self.database.session() as session:
                    await upsert_overrides(session, job.organization_id, job_data.mode_id, prices)
            except SQLAlchemyError as exc:
                failed += len(batch)
                failures.extend(
                    FailedItem(line_item_id=item.id, name=item.name, error=str(exc))
                    for item in batch
                )
                log.warning(
                    "pricing_batch_failed",
                    batch_index=batch_index,
                    batch_items=len(batch),
                    error=str(exc),
                )
            else:
                processed += len(batch)
                log.debug("pricing_batch_done", batch_index=batch_index, batch_items=len(batch))

            await self.store.update_progress(
                job.id, JobProgress(current=processed, failed_count=failed, total=total)
            )

        if processed > 0:
            try:
                async with self.database.session() as session:
                    await record_mode_usage(session, job_data.mode_id)
            except SQLAlchemyError as exc:
                # Overrides are already written; the counter is informational
                log.warning("mode_usage_update_failed", error=str(exc))

        return ResultSummary(
            success_count=processed,
            failed_count=failed,
            failed_items=failures or None,
        )

    async def _finalize(
        self, job: PricingJob, summary: ResultSummary, total: int, log
    ) -> ProcessOutcome:
        if total > 0 and summary.failed_count == total:
            status = JobStatus.FAILED
            written = await self.store.mark_as_failed(
                job.id, f"All {total} items failed to update", summary
            )
        else:
            status = JobStatus.COMPLETED
            written = await self.store.mark_as_completed(job.id, summary)

        if not written:
            # The row left processing under us; report what it is now
            current = await self.store.get_job(job.id)
            current_status = current.status if current else None
            log.warning(
                "pricing_job_finalize_skipped",
                intended=status.value,
                status=current_status.value if current_status else None,
            )
            return ProcessOutcome.not_applicable(str(job.id), current_status)

        log.info(
            "pricing_job_finished",
            status=status.value,
            success_count=summary.success_count,
            failed_count=summary.failed_count,
        )
        return ProcessOutcome.success(str(job.id), summary, status)
