"""Health check endpoint."""

import structlog
from fastapi import APIRouter

from arbatch import __version__
from arbatch.routers import batch_jobs
from arbatch.schemas.batch_jobs import HealthResponse

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Report store reachability and dispatcher/poller state.

    Status is "degraded" when the scheduler is missing or its store cannot
    be reached.
    """
    scheduler = batch_jobs._scheduler
    if scheduler is None:
        return HealthResponse(
            status="degraded",
            version=__version__,
            store="unavailable",
            store_error="Batch scheduler not initialized",
            in_flight=0,
            max_concurrent_jobs=0,
            poller_running=False,
        )

    store_error = None
    try:
        await scheduler.job_repo.ping()
        store = "ok"
    except Exception as e:
        logger.warning("health_store_unreachable", error=str(e))
        store = "error"
        store_error = str(e)

    return HealthResponse(
        status="ok" if store == "ok" else "degraded",
        version=__version__,
        store=store,
        store_error=store_error,
        in_flight=scheduler.dispatcher.in_flight_count,
        max_concurrent_jobs=scheduler.dispatcher.max_concurrent_jobs,
        poller_running=scheduler.poller.is_running,
        poller_last_run_at=scheduler.poller.last_run_at,
    )
