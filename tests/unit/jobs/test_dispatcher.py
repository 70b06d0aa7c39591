"""Tests for the concurrency-limited dispatcher."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from arbatch.jobs.dispatcher import JobDispatcher
from arbatch.jobs.executor import JobExecutor
from arbatch.jobs.models import JobResult
from arbatch.jobs.registry import ProcessorRegistry
from arbatch.jobs.types import BatchJobType, JobStatus, ScheduleType
from arbatch.repositories.jobs import BatchJobRepository


async def _queue(job_store, priority, name=None):
    return await job_store.create(
        name=name or f"job-p{priority}",
        job_type=BatchJobType.STATISTICS_AGGREGATION,
        status=JobStatus.QUEUED,
        schedule_type=ScheduleType.IMMEDIATE,
        priority=priority,
    )


class RecordingExecutor:
    """Records claim order and the peak number of jobs running at once."""

    def __init__(self, job_store):
        self._job_store = job_store
        self.started = []
        self.running = 0
        self.peak = 0

    async def execute_job(self, job):
        self.started.append(job)
        self.running += 1
        self.peak = max(self.peak, self.running)
        await asyncio.sleep(0.01)
        self.running -= 1
        await self._job_store.transition(
            job.id, [JobStatus.PROCESSING], JobStatus.COMPLETED
        )
        return JobStatus.COMPLETED


class TestJobDispatcher:
    def test_rejects_zero_capacity(self, job_store):
        with pytest.raises(ValueError):
            JobDispatcher(job_store, MagicMock(), worker_id="w", max_concurrent_jobs=0)

    @pytest.mark.asyncio
    async def test_claim_order_follows_priority_then_age(self, job_store):
        jobs = [await _queue(job_store, p) for p in (1, 5, 3, 5, 2)]
        executor = RecordingExecutor(job_store)
        dispatcher = JobDispatcher(
            job_store, executor, worker_id="w1", max_concurrent_jobs=2
        )

        started = await dispatcher.dispatch_available()
        assert started == 2
        await dispatcher.join()

        assert [j.priority for j in executor.started] == [5, 5, 3, 2, 1]
        # Equal priorities run oldest first
        assert executor.started[0].id == jobs[1].id
        assert executor.started[1].id == jobs[3].id
        assert executor.peak <= 2

    @pytest.mark.asyncio
    async def test_never_exceeds_max_concurrent_jobs(self, job_store):
        for _ in range(7):
            await _queue(job_store, 5)
        executor = RecordingExecutor(job_store)
        dispatcher = JobDispatcher(
            job_store, executor, worker_id="w1", max_concurrent_jobs=3
        )

        await dispatcher.dispatch_available()
        assert dispatcher.in_flight_count == 3
        await dispatcher.join()

        assert len(executor.started) == 7
        assert executor.peak == 3
        assert dispatcher.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_claimed_job_is_recorded_with_owner(self, job_store):
        job = await _queue(job_store, 5)
        gate = asyncio.Event()
        async def wait_for_gate(job):
            await gate.wait()

        executor = MagicMock()
        executor.execute_job = AsyncMock(side_effect=wait_for_gate)
        dispatcher = JobDispatcher(job_store, executor, worker_id="host:42")

        claimed = await dispatcher.dispatch_next()

        assert claimed.id == job.id
        assert dispatcher.in_flight_ids == [job.id]
        stored = await job_store.get(job.id)
        assert stored.status == JobStatus.PROCESSING
        assert stored.claimed_by == "host:42"

        gate.set()
        await dispatcher.join()

    @pytest.mark.asyncio
    async def test_dispatch_next_returns_none_when_queue_empty(self, job_store):
        dispatcher = JobDispatcher(job_store, MagicMock(), worker_id="w1")
        assert await dispatcher.dispatch_next() is None

    @pytest.mark.asyncio
    async def test_executor_error_releases_slot(self, job_store):
        await _queue(job_store, 5)
        await _queue(job_store, 4)
        executor = MagicMock()
        executor.execute_job = AsyncMock(side_effect=RuntimeError("boom"))
        dispatcher = JobDispatcher(
            job_store, executor, worker_id="w1", max_concurrent_jobs=1
        )

        await dispatcher.dispatch_available()
        await dispatcher.join()

        assert executor.execute_job.await_count == 2
        assert dispatcher.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_trigger_dispatches_in_background(self, job_store):
        await _queue(job_store, 5)
        executor = RecordingExecutor(job_store)
        dispatcher = JobDispatcher(job_store, executor, worker_id="w1")

        dispatcher.trigger()
        await dispatcher.join()

        assert len(executor.started) == 1

    @pytest.mark.asyncio
    async def test_closed_dispatcher_claims_nothing(self, job_store):
        job = await _queue(job_store, 5)
        dispatcher = JobDispatcher(job_store, RecordingExecutor(job_store), worker_id="w1")

        await dispatcher.close()

        assert dispatcher.is_closed
        assert await dispatcher.dispatch_next() is None
        stored = await job_store.get(job.id)
        assert stored.status == JobStatus.QUEUED

    @pytest.mark.asyncio
    async def test_close_cancels_jobs_past_timeout(self, job_store):
        await _queue(job_store, 5)
        async def hang(job):
            await asyncio.sleep(10)

        executor = MagicMock()
        executor.execute_job = AsyncMock(side_effect=hang)
        dispatcher = JobDispatcher(job_store, executor, worker_id="w1")

        await dispatcher.dispatch_next()
        await dispatcher.close(timeout=0.01)

        assert dispatcher.in_flight_count == 0


def _pg_job_row(**overrides):
    now = datetime.now(timezone.utc)
    row = {
        "id": uuid4(),
        "name": "transcode videos",
        "type": "video_transcode",
        "status": "processing",
        "schedule_type": "immediate",
        "config": "{}",
        "priority": 5,
        "scheduled_at": None,
        "cron_expression": None,
        "progress": 0,
        "total_items": None,
        "processed_items": 0,
        "failed_items": 0,
        "error_message": None,
        "result_summary": None,
        "claimed_by": "w1",
        "created_by": None,
        "created_at": now,
        "updated_at": now,
        "started_at": now,
        "completed_at": None,
    }
    row.update(overrides)
    return row


class TestUnknownJobType:
    @pytest.mark.asyncio
    async def test_fails_job_and_keeps_draining(
        self, job_store, history_store, item_store
    ):
        registry = ProcessorRegistry()

        @registry.processor(BatchJobType.STATISTICS_AGGREGATION)
        async def aggregate(job, ctx):
            return JobResult(total=1, processed=1, failed=0)

        unknown = await job_store.create(
            name="transcode videos",
            job_type="video_transcode",
            status=JobStatus.QUEUED,
            schedule_type=ScheduleType.IMMEDIATE,
            priority=9,
        )
        known = await _queue(job_store, 1)
        executor = JobExecutor(job_store, history_store, item_store, registry=registry)
        dispatcher = JobDispatcher(
            job_store, executor, worker_id="w1", max_concurrent_jobs=1
        )

        await dispatcher.dispatch_available()
        await dispatcher.join()

        failed = await job_store.get(unknown.id)
        assert failed.status == JobStatus.FAILED
        assert "video_transcode" in failed.error_message
        history = await history_store.list_for_job(unknown.id)
        assert history[0].error_logs[0]["error_type"] == "JobConfigurationError"
        assert (await job_store.get(known.id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_postgres_row_with_unknown_type_is_failed(self):
        claimed = _pg_job_row()
        mock_conn = AsyncMock()
        mock_conn.fetchrow.side_effect = [
            claimed,
            {**claimed, "status": "failed"},
            None,
        ]
        mock_pool = MagicMock()
        mock_pool.acquire.return_value.__aenter__.return_value = mock_conn
        job_repo = BatchJobRepository(mock_pool)
        history_repo = MagicMock()
        history_repo.append = AsyncMock()
        executor = JobExecutor(
            job_repo, history_repo, MagicMock(), registry=ProcessorRegistry()
        )
        dispatcher = JobDispatcher(job_repo, executor, worker_id="w1")

        job = await dispatcher.dispatch_next()
        await dispatcher.join()

        assert job.type == "video_transcode"
        fail_call = mock_conn.fetchrow.call_args_list[1]
        assert fail_call.args[2] == "failed"
        assert (
            "No processor registered for job type: video_transcode" in fail_call.args
        )
        history = history_repo.append.await_args.args[0]
        assert history.status == JobStatus.FAILED
        assert dispatcher.in_flight_count == 0
