"""Construction of the scheduler and its collaborators.

Shared by the HTTP app lifespan and the headless worker so both run the
same wiring.
"""

import traceback
from dataclasses import dataclass
from typing import Optional

import asyncpg
import structlog

from arbatch.config import Settings
from arbatch.jobs import handlers  # noqa: F401  (registers processors)
from arbatch.jobs.registry import default_registry
from arbatch.jobs.scheduler import BatchScheduler
from arbatch.repositories import (
    BatchJobHistoryRepository,
    BatchJobRepository,
    BatchQueueItemRepository,
    InMemoryHistoryStore,
    InMemoryJobStore,
    InMemoryQueueItemStore,
)
from arbatch.repositories.assets import AssetRepository
from arbatch.services.media import MediaServiceClient
from arbatch.services.storage import LocalExportStorage

logger = structlog.get_logger(__name__)


@dataclass
class Components:
    """Everything a running scheduler process owns."""

    scheduler: BatchScheduler
    pool: Optional[asyncpg.Pool] = None
    media: Optional[MediaServiceClient] = None

    async def close(self, timeout: Optional[float] = 30.0) -> None:
        """Stop the scheduler, then release connections."""
        await self.scheduler.stop(timeout=timeout)
        if self.media:
            await self.media.close()
        if self.pool:
            await self.pool.close()
            logger.info("database_pool_closed")


async def init_database(settings: Settings) -> Optional[asyncpg.Pool]:
    """Create the asyncpg pool, or return None when no database is configured.

    Connection failures are raised: a configured but unreachable database
    should stop startup instead of silently switching to memory.
    """
    if not settings.database_url:
        logger.warning(
            "database_not_configured",
            detail="Using in-memory job stores; jobs are lost on restart",
        )
        return None

    try:
        pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=30,
        )
    except Exception as e:
        logger.error(
            "database_pool_init_failed",
            error=str(e),
            traceback=traceback.format_exc(),
        )
        raise

    logger.info(
        "database_pool_initialized",
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    return pool


def build_scheduler(
    settings: Settings,
    pool: Optional[asyncpg.Pool],
    worker_id: str,
    media: Optional[MediaServiceClient] = None,
    storage: Optional[LocalExportStorage] = None,
) -> BatchScheduler:
    """Build a scheduler over PostgreSQL stores, or in-memory ones without a pool."""
    if pool is not None:
        job_repo = BatchJobRepository(pool)
        history_repo = BatchJobHistoryRepository(pool)
        items_repo = BatchQueueItemRepository(pool)
        assets = AssetRepository(pool)
    else:
        job_repo = InMemoryJobStore()
        history_repo = InMemoryHistoryStore()
        items_repo = InMemoryQueueItemStore()
        assets = None

    context = {
        "assets": assets,
        "media": media,
        "storage": storage,
        "settings": settings,
        "worker_id": worker_id,
    }
    return BatchScheduler.from_settings(
        settings,
        job_repo,
        history_repo,
        items_repo,
        worker_id=worker_id,
        registry=default_registry,
        context=context,
    )


async def build_components(settings: Settings, worker_id: str) -> Components:
    """Create the pool, collaborators and scheduler (not yet started)."""
    pool = await init_database(settings)
    media = MediaServiceClient(
        base_url=settings.media_service_url,
        timeout=settings.media_service_timeout,
    )
    storage = LocalExportStorage(settings.export_dir)
    scheduler = build_scheduler(settings, pool, worker_id, media=media, storage=storage)
    return Components(scheduler=scheduler, pool=pool, media=media)
