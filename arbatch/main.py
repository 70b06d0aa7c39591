"""AR batch scheduler - FastAPI application."""

from fastapi import FastAPI

from arbatch import __version__
from arbatch.config import get_settings
from arbatch.core.lifespan import lifespan
from arbatch.core.log_config import configure_logging
from arbatch.core.middleware import setup_middleware
from arbatch.core.sentry import init_sentry
from arbatch.routers import batch_jobs, health, metrics

settings = get_settings()
configure_logging(settings.log_level)
init_sentry(settings)

app = FastAPI(
    title="AR Batch Scheduler",
    description="Batch job scheduling and processing for AR content",
    version=__version__,
    lifespan=lifespan,
)

setup_middleware(app)

app.include_router(health.router, tags=["health"])
app.include_router(metrics.router, tags=["metrics"])
app.include_router(batch_jobs.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "arbatch.main:app",
        host=settings.service_host,
        port=settings.service_port,
        reload=False,
    )
