from arq.connections import ArqRedis, RedisSettings, create_pool

from pricebook.config import redis_url_from_env

PROCESS_PRICING_JOB = "process_pricing_job"


def get_redis_settings(redis_url: str | None = None) -> RedisSettings:
    """Get Redis settings, defaulting to ``REDIS_URL``.

    Does not load the full app config, so the worker class can call it at
    import time.
    """
    return RedisSettings.from_dsn(redis_url or redis_url_from_env())


async def get_queue(redis_url: str | None = None) -> ArqRedis:
    """Create a connection pool to the Redis queue."""
    return await create_pool(get_redis_settings(redis_url))


async def enqueue_pricing_job(queue: ArqRedis, job_id: str) -> None:
    """Hand a pricing job to the arq worker.

    The arq job id is pinned to the pricing job id so a double submit of the
    same job is deduplicated by arq while the first one is still queued.
    """
    await queue.enqueue_job(PROCESS_PRICING_JOB, job_id, _job_id=f"pricing-{job_id}")
