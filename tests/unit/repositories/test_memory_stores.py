"""Tests for the in-memory stores."""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from arbatch.jobs.errors import InvalidTransitionError
from arbatch.jobs.models import BatchJobHistory, BatchQueueItem
from arbatch.jobs.types import BatchJobType, JobStatus, QueueItemStatus, ScheduleType


async def _create(job_store, priority=5, status=JobStatus.QUEUED, **kwargs):
    return await job_store.create(
        name=kwargs.pop("name", f"p{priority}"),
        job_type=kwargs.pop("job_type", BatchJobType.DATA_EXPORT),
        status=status,
        schedule_type=kwargs.pop("schedule_type", ScheduleType.IMMEDIATE),
        priority=priority,
        **kwargs,
    )


class TestInMemoryJobStore:
    @pytest.mark.asyncio
    async def test_returns_copies(self, job_store):
        job = await _create(job_store)
        job.status = JobStatus.FAILED

        stored = await job_store.get(job.id)
        assert stored.status == JobStatus.QUEUED

    @pytest.mark.asyncio
    async def test_claim_order(self, job_store):
        ids = {}
        for p in (1, 5, 3, 5, 2):
            job = await _create(job_store, p)
            ids.setdefault(p, []).append(job.id)

        claimed = []
        while (job := await job_store.claim_next("w")) is not None:
            claimed.append(job)

        assert [j.priority for j in claimed] == [5, 5, 3, 2, 1]
        assert [claimed[0].id, claimed[1].id] == ids[5]
        assert all(j.status == JobStatus.PROCESSING for j in claimed)
        assert all(j.started_at is not None for j in claimed)

    @pytest.mark.asyncio
    async def test_concurrent_claims_never_share_a_job(self, job_store):
        for _ in range(5):
            await _create(job_store)

        results = await asyncio.gather(
            *(job_store.claim_next(f"w{i}") for i in range(8))
        )

        claimed = [r.id for r in results if r is not None]
        assert len(claimed) == 5
        assert len(set(claimed)) == 5

    @pytest.mark.asyncio
    async def test_transition_cas(self, job_store):
        job = await _create(job_store)

        first = await job_store.transition(job.id, [JobStatus.QUEUED], JobStatus.CANCELLED)
        second = await job_store.transition(job.id, [JobStatus.QUEUED], JobStatus.CANCELLED)

        assert first.status == JobStatus.CANCELLED
        assert second is None

    @pytest.mark.asyncio
    async def test_transition_rejects_illegal_edge(self, job_store):
        job = await _create(job_store)
        with pytest.raises(InvalidTransitionError):
            await job_store.transition(job.id, [JobStatus.QUEUED], JobStatus.COMPLETED)

    @pytest.mark.asyncio
    async def test_update_fields_rejects_unknown_column(self, job_store):
        job = await _create(job_store)
        with pytest.raises(ValueError):
            await job_store.update_fields(job.id, status=JobStatus.FAILED)

    @pytest.mark.asyncio
    async def test_update_missing_job(self, job_store):
        assert await job_store.update_fields(uuid4(), progress=10) is None

    @pytest.mark.asyncio
    async def test_promote_due(self, job_store):
        now = datetime(2026, 6, 1, tzinfo=timezone.utc)
        due = await _create(
            job_store,
            status=JobStatus.PENDING,
            schedule_type=ScheduleType.SCHEDULED,
            scheduled_at=now - timedelta(minutes=1),
        )
        await _create(
            job_store,
            status=JobStatus.PENDING,
            schedule_type=ScheduleType.SCHEDULED,
            scheduled_at=now + timedelta(minutes=1),
        )

        assert await job_store.promote_due(now) == [due.id]
        assert await job_store.promote_due(now) == []

    @pytest.mark.asyncio
    async def test_list_jobs_filters_and_pages(self, job_store):
        for _ in range(3):
            await _create(job_store)
        await _create(job_store, status=JobStatus.PENDING, schedule_type=ScheduleType.RECURRING)

        queued, total = await job_store.list_jobs(status=JobStatus.QUEUED, limit=2)
        assert len(queued) == 2
        assert total == 3

        recurring, total = await job_store.list_jobs(schedule_type=ScheduleType.RECURRING)
        assert total == 1
        assert recurring[0].status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_list_active(self, job_store):
        await _create(job_store)
        claimed = await job_store.claim_next("w")

        active = await job_store.list_active()

        assert [j.id for j in active] == [claimed.id]

    @pytest.mark.asyncio
    async def test_list_active_orders_by_priority_then_start(self, job_store):
        await _create(job_store, priority=1)
        low = await job_store.claim_next("w")
        await _create(job_store, priority=9)
        high = await job_store.claim_next("w")
        assert low.started_at <= high.started_at

        active = await job_store.list_active()

        assert [j.priority for j in active] == [9, 1]

    @pytest.mark.asyncio
    async def test_delete_refuses_processing(self, job_store):
        job = await _create(job_store)
        await job_store.claim_next("w")

        assert await job_store.delete(job.id) is False
        assert await job_store.get(job.id) is not None

    @pytest.mark.asyncio
    async def test_delete(self, job_store):
        job = await _create(job_store)
        assert await job_store.delete(job.id) is True
        assert await job_store.get(job.id) is None
        assert await job_store.delete(job.id) is False


class TestInMemoryQueueItemStore:
    @pytest.mark.asyncio
    async def test_reinsert_bumps_retry_count(self, item_store):
        job_id = uuid4()
        item = BatchQueueItem(
            job_id=job_id,
            item_type="ar_marker",
            item_id="m-1",
            status=QueueItemStatus.PROCESSING,
        )
        await item_store.insert(item)
        await item_store.update(
            job_id,
            "m-1",
            status=QueueItemStatus.FAILED,
            error_message="timeout",
            processing_data={"quality_score": 0.4},
        )

        again = await item_store.insert(item)

        assert again.retry_count == 1
        assert again.status == QueueItemStatus.PROCESSING
        assert again.error_message is None
        assert again.processing_data is None

    @pytest.mark.asyncio
    async def test_reset_for_job(self, item_store):
        job_id = uuid4()
        for key in ("a", "b"):
            await item_store.insert(
                BatchQueueItem(
                    job_id=job_id,
                    item_type="metric",
                    item_id=key,
                    status=QueueItemStatus.FAILED,
                )
            )
        await item_store.insert(
            BatchQueueItem(job_id=uuid4(), item_type="metric", item_id="c")
        )

        assert await item_store.reset_for_job(job_id) == 2
        items = await item_store.list_for_job(job_id)
        assert {i.status for i in items} == {QueueItemStatus.PENDING}


class TestInMemoryHistoryStore:
    @pytest.mark.asyncio
    async def test_newest_first(self, history_store):
        job_id = uuid4()
        now = datetime.now(timezone.utc)
        for status in (JobStatus.FAILED, JobStatus.COMPLETED):
            await history_store.append(
                BatchJobHistory(
                    job_id=job_id, status=status, started_at=now, completed_at=now
                )
            )

        rows = await history_store.list_for_job(job_id)

        assert [r.status for r in rows] == [JobStatus.COMPLETED, JobStatus.FAILED]
        assert all(r.id is not None for r in rows)
