"""
Inbound Webhooks - verified webhook ingestion with asynchronous processing.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from inbound_webhooks.config import get_settings
from inbound_webhooks.api.router import api_router
from inbound_webhooks.database import dispose_engine
from inbound_webhooks.services.providers import get_provider_registry
from inbound_webhooks.utils.logging import (
    MAX_CORRELATION_ID_LENGTH,
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("inbound_webhooks")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID")
        # Stored on the webhook record (String(64)); an oversized id is replaced
        if not cid or len(cid) > MAX_CORRELATION_ID_LENGTH:
            cid = generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("Inbound webhooks starting up (env=%s)", settings.app_env)

    # Fail fast on unsafe verification config (e.g. accept_all in production)
    providers = get_provider_registry()
    logger.info("Webhook providers: %s", ", ".join(sorted(providers)))

    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    worker_tasks: list[asyncio.Task] = []

    from inbound_webhooks.workers.task_processor import run_task_processor
    worker_tasks.append(asyncio.create_task(run_task_processor()))
    logger.info("Task processor started")

    if settings.reconciliation_sweeper_enabled:
        from inbound_webhooks.workers.reconciliation_sweeper import run_reconciliation_sweeper
        worker_tasks.append(asyncio.create_task(run_reconciliation_sweeper()))
        logger.info("Reconciliation sweeper started")
    else:
        logger.info("Reconciliation sweeper disabled (RECONCILIATION_SWEEPER_ENABLED=false)")

    yield

    # Graceful shutdown - give workers time to finish current work
    logger.info("Inbound webhooks shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        done, pending = await asyncio.wait(worker_tasks, timeout=10.0)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
    await dispose_engine()
    logger.info("Inbound webhooks shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="Inbound Webhooks",
        description="Verified webhook ingestion with asynchronous processing",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(CorrelationIdMiddleware)
    application.include_router(api_router)

    return application


app = create_app()
