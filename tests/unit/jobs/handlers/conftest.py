"""Fixtures shared by the processor tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from arbatch.jobs.cancellation import CancellationToken
from arbatch.jobs.types import JobStatus, ScheduleType


@pytest.fixture
def claim_job(job_store):
    """Create a queued job of the given type and claim it."""

    async def _claim(job_type, config=None):
        await job_store.create(
            name=f"{job_type.value} test",
            job_type=job_type,
            status=JobStatus.QUEUED,
            schedule_type=ScheduleType.IMMEDIATE,
            config=config or {},
        )
        return await job_store.claim_next("test-worker")

    return _claim


@pytest.fixture
def mock_assets():
    return AsyncMock()


@pytest.fixture
def mock_media():
    return AsyncMock()


@pytest.fixture
def mock_storage():
    storage = MagicMock()
    storage.upload = AsyncMock(return_value="/tmp/exports/file")
    storage.public_url = MagicMock(side_effect=lambda key: f"/exports/{key}")
    return storage


@pytest.fixture
def make_context(job_store, item_store, mock_assets, mock_media, mock_storage):
    """Execution context as the executor builds it."""

    def _make(job, **overrides):
        ctx = {
            "job_repo": job_store,
            "items_repo": item_store,
            "cancellation": CancellationToken(job_store, job.id),
            "error_summary_limit": 10,
            "assets": mock_assets,
            "media": mock_media,
            "storage": mock_storage,
        }
        ctx.update(overrides)
        return ctx

    return _make
