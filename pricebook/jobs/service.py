"""Job submission: validate, size and create a pricing job, then hand it off."""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

import structlog
from arq.connections import ArqRedis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from pricebook.core.queue import enqueue_pricing_job
from pricebook.db.connection import Database
from pricebook.jobs.errors import PricingModeNotFound, StoreUnavailable
from pricebook.jobs.store import JobStore
from pricebook.models import JobData, OperationType, PreviousPrice
from pricebook.pricing.modes import get_pricing_mode
from pricebook.pricing.overrides import count_target_items

logger = structlog.get_logger()


async def submit_pricing_job(
    store: JobStore,
    database: Database,
    organization_id: str,
    mode_id: UUID,
    line_item_ids: Sequence[UUID] | None = None,
    previous_prices: Sequence[PreviousPrice] | None = None,
    created_by: str | None = None,
    queue: ArqRedis | None = None,
) -> UUID:
    """Create a pending apply-pricing-mode job.

    ``total_items`` is the number of requested ids, or every item visible to
    the organization when none are given. The processor recounts the resolved
    set when it runs.

    When ``queue`` is given the job is enqueued for the arq worker; if that
    fails the job is marked failed so it does not sit in pending forever.

    Raises:
        PricingModeNotFound: If ``mode_id`` does not exist
        StoreUnavailable: If the catalog cannot be read
    """
    line_item_ids = list(line_item_ids) if line_item_ids else None

    try:
        async with database.session() as session:
            mode = await get_pricing_mode(session, mode_id)
            if mode is None:
                raise PricingModeNotFound(mode_id)
            mode_name = mode.name

            if line_item_ids:
                total_items = len(line_item_ids)
            else:
                total_items = await count_target_items(session, organization_id)
    except SQLAlchemyError as exc:
        raise StoreUnavailable(f"Could not size pricing job: {exc}") from exc

    job_data = JobData(
        mode_id=mode_id,
        mode_name=mode_name,
        line_item_ids=line_item_ids,
        previous_prices=list(previous_prices) if previous_prices else None,
        apply_to_all=not line_item_ids,
    )
    job_id = await store.create_job(
        OperationType.APPLY_PRICING_MODE,
        organization_id,
        total_items,
        job_data,
        created_by=created_by,
    )

    if queue is not None:
        try:
            await enqueue_pricing_job(queue, str(job_id))
        except RedisError as exc:
            logger.error("pricing_job_enqueue_failed", job_id=str(job_id), error=str(exc))
            await store.mark_as_failed(job_id, f"Could not enqueue job: {exc}")
            raise
        logger.info("pricing_job_enqueued", job_id=str(job_id))

    return job_id
