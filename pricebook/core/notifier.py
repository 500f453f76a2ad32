"""Publish/subscribe progress feed for pricing jobs.

Every Job Store mutation publishes a ``JobEvent`` keyed by job id. Observers
open a subscription for one job and read events until they unsubscribe:

    async with notifier.subscribe(job_id) as events:
        async for event in events:
            ...

Leaving the ``async with`` block (or calling ``aclose()``) releases the
subscription. Two backends share the interface: ``ProgressNotifier`` fans
out inside one process, ``RedisProgressNotifier`` goes through Redis pub/sub
so events published by arq worker processes reach the web process.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from uuid import UUID

import structlog
from redis.asyncio import Redis

from pricebook.models import JobEvent

logger = structlog.get_logger()

CHANNEL_PREFIX = "pricing-job:"

_CLOSED = object()


def channel_for(job_id: UUID | str) -> str:
    return f"{CHANNEL_PREFIX}{job_id}"


class BaseSubscription:
    """Async iterator over one job's events; also an async context manager."""

    def __init__(self, job_id: UUID | str):
        self.job_id = str(job_id)
        self.closed = False

    async def start(self) -> None:
        pass

    async def get(self, timeout: float | None = None) -> JobEvent | None:
        """Next event, or None when ``timeout`` elapses or the stream closes."""
        raise NotImplementedError

    async def aclose(self) -> None:
        raise NotImplementedError

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __aiter__(self):
        return self

    async def __anext__(self) -> JobEvent:
        while True:
            if self.closed:
                raise StopAsyncIteration
            event = await self.get()
            if event is not None:
                return event


class JobSubscription(BaseSubscription):
    """In-process subscription backed by a bounded queue."""

    def __init__(self, notifier: ProgressNotifier, job_id: UUID | str, max_queue_size: int):
        super().__init__(job_id)
        self._notifier = notifier
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)

    def deliver(self, event: JobEvent) -> None:
        # Never block the publisher: drop the oldest event when full
        if self._queue.full():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            logger.warning("progress_event_dropped", job_id=self.job_id)
        self._queue.put_nowait(event)

    async def get(self, timeout: float | None = None) -> JobEvent | None:
        if self.closed:
            return None
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            self.closed = True
            return None
        return item

    def close_nowait(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Wake up a reader blocked in get()
        while True:
            try:
                self._queue.put_nowait(_CLOSED)
                break
            except asyncio.QueueFull:
                self._queue.get_nowait()

    async def aclose(self) -> None:
        self._notifier.unsubscribe(self)


class ProgressNotifier:
    """In-process fan-out of job events to subscribers keyed by job id."""

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._subscribers: dict[str, set[JobSubscription]] = defaultdict(set)

    def subscribe(self, job_id: UUID | str) -> JobSubscription:
        subscription = JobSubscription(self, job_id, self.max_queue_size)
        self._subscribers[subscription.job_id].add(subscription)
        logger.debug("progress_subscribed", job_id=subscription.job_id)
        return subscription

    def unsubscribe(self, subscription: JobSubscription) -> None:
        subscribers = self._subscribers.get(subscription.job_id)
        if subscribers is not None:
            subscribers.discard(subscription)
            if not subscribers:
                del self._subscribers[subscription.job_id]
        subscription.close_nowait()
        logger.debug("progress_unsubscribed", job_id=subscription.job_id)

    def subscriber_count(self, job_id: UUID | str) -> int:
        return len(self._subscribers.get(str(job_id), ()))

    async def publish(self, event: JobEvent) -> int:
        """Deliver an event to every subscriber of its job.

        Returns:
            Number of subscribers the event was handed to
        """
        subscribers = list(self._subscribers.get(str(event.job_id), ()))
        for subscription in subscribers:
            subscription.deliver(event)
        return len(subscribers)

    async def close(self) -> None:
        for subscribers in list(self._subscribers.values()):
            for subscription in list(subscribers):
                self.unsubscribe(subscription)


class RedisJobSubscription(BaseSubscription):
    """Subscription to one job's Redis channel. Must be entered before use."""

    def __init__(self, redis: Redis, job_id: UUID | str):
        super().__init__(job_id)
        self._redis = redis
        self._pubsub = None

    async def start(self) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(channel_for(self.job_id))

    async def get(self, timeout: float | None = None) -> JobEvent | None:
        if self.closed or self._pubsub is None:
            return None

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            remaining = 1.0 if deadline is None else max(0.0, deadline - time.monotonic())
            message = await self._pubsub.get_message(
                ignore_subscribe_messages=True, timeout=remaining
            )
            if message is not None and message.get("type") == "message":
                return JobEvent.model_validate_json(message["data"])
            if deadline is not None and time.monotonic() >= deadline:
                return None

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(channel_for(self.job_id))
            await self._pubsub.aclose()


class RedisProgressNotifier:
    """Job events over Redis pub/sub, one channel per job."""

    def __init__(self, redis: Redis):
        self._redis = redis

    def subscribe(self, job_id: UUID | str) -> RedisJobSubscription:
        return RedisJobSubscription(self._redis, job_id)

    async def unsubscribe(self, subscription: RedisJobSubscription) -> None:
        await subscription.aclose()

    async def publish(self, event: JobEvent) -> int:
        return await self._redis.publish(channel_for(event.job_id), event.model_dump_json())

    async def close(self) -> None:
        await self._redis.aclose()


def create_notifier(backend: str, redis_url: str | None = None):
    """Build the notifier named by ``NOTIFIER_BACKEND``."""
    if backend == "redis":
        if not redis_url:
            raise ValueError("redis_url is required for the redis notifier")
        return RedisProgressNotifier(Redis.from_url(redis_url))
    if backend == "memory":
        return ProgressNotifier()
    raise ValueError(f"Unknown notifier backend: {backend!r}")
