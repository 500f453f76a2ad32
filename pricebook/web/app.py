"""FastAPI application for Pricebook bulk pricing jobs."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from pricebook import __version__
from pricebook.config import AppConfig, get_config
from pricebook.core.logging import configure_logging
from pricebook.core.notifier import create_notifier
from pricebook.core.queue import get_queue
from pricebook.db.connection import Database
from pricebook.jobs.processor import BatchPricingProcessor
from pricebook.jobs.store import JobStore
from pricebook.web.routes import health, jobs, modes

logger = structlog.get_logger()


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            logger.info(
                "request_completed",
                status_code=response.status_code,
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build the app. Configuration is read when the app starts, not at import."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = config or get_config()
        configure_logging(cfg.log_level, cfg.log_format)

        database = Database(cfg.db)
        notifier = create_notifier(cfg.queue.notifier_backend, cfg.queue.redis_url)
        store = JobStore(database, notifier)

        app.state.config = cfg
        app.state.database = database
        app.state.notifier = notifier
        app.state.job_store = store
        app.state.processor = BatchPricingProcessor.from_config(database, store, cfg.jobs)
        app.state.queue = (
            await get_queue(cfg.queue.redis_url) if cfg.queue.enqueue_on_submit else None
        )
        logger.info(
            "app_started",
            notifier=cfg.queue.notifier_backend,
            enqueue_on_submit=cfg.queue.enqueue_on_submit,
        )

        try:
            yield
        finally:
            if app.state.queue is not None:
                await app.state.queue.aclose()
            await notifier.close()
            await database.close()
            logger.info("app_stopped")

    app = FastAPI(
        title="Pricebook",
        description="Bulk pricing override jobs",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router)
    app.include_router(jobs.router)
    app.include_router(modes.router)
    return app


app = create_app()
