"""Application lifespan management - startup and shutdown logic."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI

from arbatch import __version__
from arbatch.config import get_settings
from arbatch.core.components import build_components
from arbatch.jobs.worker import generate_worker_id
from arbatch.routers import batch_jobs

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the scheduler, start dispatching, and drain on shutdown."""
    settings = get_settings()
    worker_id = settings.worker_id or generate_worker_id()

    logger.info(
        "service_starting",
        version=__version__,
        host=settings.service_host,
        port=settings.service_port,
        worker_id=worker_id,
        max_concurrent_jobs=settings.batch_max_concurrent_jobs,
        poll_enabled=settings.batch_poll_enabled,
    )

    components = await build_components(settings, worker_id)
    batch_jobs.set_scheduler(components.scheduler)
    await components.scheduler.start(poll=settings.batch_poll_enabled)
    if not settings.batch_poll_enabled:
        logger.info("schedule_polling_disabled")

    yield

    logger.info("service_stopping")
    batch_jobs.set_scheduler(None)
    await components.close(timeout=settings.batch_shutdown_timeout_s)
    logger.info("service_stopped")
