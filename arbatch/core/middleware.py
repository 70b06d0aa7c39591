"""Middleware and exception handlers for the FastAPI application."""

import time
import uuid

import asyncpg
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from arbatch import __version__
from arbatch.routers import metrics

logger = structlog.get_logger(__name__)

# Errors meaning the job store cannot be reached
STORE_UNAVAILABLE_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    ConnectionError,
)


async def request_middleware(request: Request, call_next):
    """Add request ID and timing to all requests and record request metrics."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )

    start_time = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start_time) * 1000

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time-Ms"] = f"{duration_ms:.2f}"
    response.headers["X-API-Version"] = __version__

    # Record metrics (skip /metrics endpoint to avoid recursion)
    if request.url.path != "/metrics":
        route = request.scope.get("route")
        metrics.record_request(
            method=request.method,
            endpoint=getattr(route, "path", request.url.path),
            status_code=response.status_code,
            duration=duration_ms / 1000,
        )

    logger.info(
        "request_completed",
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    return response


async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map job store connection failures to 503."""
    logger.error("job_store_unavailable", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=503,
        content={"detail": "Job store unavailable", "retryable": True},
    )


def setup_middleware(app: FastAPI) -> None:
    app.middleware("http")(request_middleware)
    for exc_type in STORE_UNAVAILABLE_ERRORS:
        app.add_exception_handler(exc_type, store_unavailable_handler)
