"""Headless batch worker - runs the scheduler without the HTTP API.

Usage:
    python -m arbatch.jobs.worker
"""

import asyncio
import os
import signal
import socket

import structlog

from arbatch import __version__
from arbatch.config import get_settings
from arbatch.core.components import build_components
from arbatch.core.log_config import configure_logging
from arbatch.core.sentry import init_sentry

logger = structlog.get_logger(__name__)


def generate_worker_id() -> str:
    """Generate a unique worker ID: hostname:pid."""
    return f"{socket.gethostname()}:{os.getpid()}"


async def run_worker() -> None:
    """Run the dispatcher and poll loop until SIGINT/SIGTERM."""
    settings = get_settings()
    init_sentry(settings)
    worker_id = settings.worker_id or generate_worker_id()

    components = await build_components(settings, worker_id)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await components.scheduler.start(poll=settings.batch_poll_enabled)
    logger.info(
        "worker_started",
        worker_id=worker_id,
        version=__version__,
        max_concurrent_jobs=settings.batch_max_concurrent_jobs,
    )

    try:
        await stop_event.wait()
    finally:
        logger.info("worker_stopping", worker_id=worker_id)
        await components.close(timeout=settings.batch_shutdown_timeout_s)
        logger.info("worker_stopped", worker_id=worker_id)


def main() -> None:
    configure_logging(get_settings().log_level)
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
