from typing import Any

import structlog

from pricebook.config import get_config
from pricebook.core.logging import configure_logging
from pricebook.core.notifier import RedisProgressNotifier
from pricebook.core.queue import get_redis_settings
from pricebook.db.connection import Database
from pricebook.jobs.processor import BatchPricingProcessor
from pricebook.jobs.store import JobStore

logger = structlog.get_logger()


async def startup(ctx: dict[str, Any]) -> None:
    """Initialize resources when worker starts."""
    config = get_config()
    configure_logging(config.log_level, config.log_format)

    database = Database(config.db)
    # Progress events go over the worker's own Redis connection
    store = JobStore(database, RedisProgressNotifier(ctx["redis"]))

    ctx["database"] = database
    ctx["job_store"] = store
    ctx["processor"] = BatchPricingProcessor.from_config(database, store, config.jobs)
    logger.info("worker_started", batch_size=config.jobs.batch_size)


async def shutdown(ctx: dict[str, Any]) -> None:
    """Cleanup resources when worker stops."""
    database = ctx.get("database")
    if database is not None:
        await database.close()
    logger.info("worker_stopped")


async def process_pricing_job(ctx: dict[str, Any], job_id: str) -> dict[str, Any]:
    """ARQ worker task running one bulk pricing job.

    Args:
        ctx: ARQ context
        job_id: Pricing job to process

    Returns:
        The same response body the HTTP trigger returns
    """
    outcome = await ctx["processor"].run(job_id)
    logger.info("worker_job_done", job_id=job_id, outcome=outcome.kind.value)
    return outcome.to_response()


class WorkerSettings:
    functions = [process_pricing_job]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()
    # No internal timeout: a job outliving this is left in processing
    job_timeout = 3600
