"""Batch scheduler facade.

Composes the job store, executor, dispatcher and scheduled-job poller behind
the operations the HTTP layer and the headless worker use. Construct one per
process and pass it around explicitly.
"""

from typing import Any, Optional
from uuid import UUID

import structlog

from arbatch.config import Settings
from arbatch.jobs.dispatcher import JobDispatcher
from arbatch.jobs.errors import InvalidTransitionError, JobNotFoundError
from arbatch.jobs.executor import JobExecutor
from arbatch.jobs.models import BatchJob, JobSpec
from arbatch.jobs.poller import ScheduledJobPoller
from arbatch.jobs.registry import ProcessorRegistry
from arbatch.jobs.transitions import sources_for
from arbatch.jobs.types import JobStatus, ScheduleType
from arbatch.utils.time import ensure_utc, utc_now

logger = structlog.get_logger(__name__)

MIN_PRIORITY = 1
MAX_PRIORITY = 10


class BatchScheduler:
    """Public entry point for scheduling and querying batch jobs."""

    def __init__(
        self,
        job_repo,
        history_repo,
        items_repo,
        worker_id: str,
        registry: Optional[ProcessorRegistry] = None,
        context: Optional[dict[str, Any]] = None,
        max_concurrent_jobs: int = 3,
        poll_interval_s: float = 60.0,
        job_timeout_s: Optional[float] = None,
        error_summary_limit: int = 10,
    ):
        self._job_repo = job_repo
        self._history_repo = history_repo
        self._items_repo = items_repo

        self.executor = JobExecutor(
            job_repo,
            history_repo,
            items_repo,
            registry=registry,
            context=context,
            timeout_s=job_timeout_s,
            error_summary_limit=error_summary_limit,
        )
        self.dispatcher = JobDispatcher(
            job_repo,
            self.executor,
            worker_id=worker_id,
            max_concurrent_jobs=max_concurrent_jobs,
        )
        self.poller = ScheduledJobPoller(
            job_repo, self.dispatcher, interval_s=poll_interval_s
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        job_repo,
        history_repo,
        items_repo,
        worker_id: str,
        registry: Optional[ProcessorRegistry] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> "BatchScheduler":
        return cls(
            job_repo,
            history_repo,
            items_repo,
            worker_id=worker_id,
            registry=registry,
            context=context,
            max_concurrent_jobs=settings.batch_max_concurrent_jobs,
            poll_interval_s=settings.batch_poll_interval_s,
            job_timeout_s=settings.job_timeout,
            error_summary_limit=settings.batch_error_summary_limit,
        )

    @property
    def job_repo(self):
        return self._job_repo

    @property
    def history_repo(self):
        return self._history_repo

    @property
    def items_repo(self):
        return self._items_repo

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, poll: bool = True) -> None:
        """Start the poll loop and pick up anything already queued."""
        if poll:
            await self.poller.start()
        self.dispatcher.trigger()

    async def stop(self, timeout: Optional[float] = 30.0) -> None:
        """Stop polling, then drain in-flight jobs."""
        await self.poller.stop()
        await self.dispatcher.close(timeout=timeout)

    async def wait_idle(self) -> None:
        """Wait until the dispatcher has nothing running or pending."""
        await self.dispatcher.join()

    # =========================================================================
    # Operations
    # =========================================================================

    async def schedule_job(self, spec: JobSpec) -> UUID:
        """Create a job and return its id without waiting for it to run.

        Immediate jobs are queued and a dispatch pass is triggered; scheduled
        and recurring jobs start out pending.
        """
        if not MIN_PRIORITY <= spec.priority <= MAX_PRIORITY:
            raise ValueError(
                f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}"
            )

        scheduled_at = spec.scheduled_at
        if spec.schedule_type == ScheduleType.SCHEDULED:
            if scheduled_at is None:
                raise ValueError("scheduled_at is required for scheduled jobs")
            scheduled_at = ensure_utc(scheduled_at)
        elif scheduled_at is not None:
            scheduled_at = ensure_utc(scheduled_at)

        status = (
            JobStatus.QUEUED
            if spec.schedule_type == ScheduleType.IMMEDIATE
            else JobStatus.PENDING
        )
        job = await self._job_repo.create(
            name=spec.name,
            job_type=spec.type,
            status=status,
            schedule_type=spec.schedule_type,
            config=spec.config,
            priority=spec.priority,
            scheduled_at=scheduled_at,
            cron_expression=spec.cron_expression,
            created_by=spec.created_by,
        )

        log = logger.bind(job_id=str(job.id), job_type=job.type_name)
        log.info(
            "job_scheduled",
            status=job.status.value,
            schedule_type=job.schedule_type.value,
            priority=job.priority,
        )
        if spec.schedule_type == ScheduleType.RECURRING:
            # Recurrence is stored but not re-armed after completion.
            log.warning("recurring_schedule_not_armed", cron_expression=spec.cron_expression)

        if status == JobStatus.QUEUED:
            self.dispatcher.trigger()
        return job.id

    async def cancel_job(self, job_id: UUID) -> BatchJob:
        """Mark a job cancelled.

        A pending or queued job will never be claimed afterwards. A running
        job keeps running until its processor checks for cancellation.
        Cancelling an already cancelled job is a no-op.
        """
        job = await self._job_repo.transition(
            job_id,
            sources_for(JobStatus.CANCELLED),
            JobStatus.CANCELLED,
            completed_at=utc_now(),
        )
        if job is not None:
            logger.info("job_cancel_requested", job_id=str(job_id))
            return job

        current = await self._job_repo.get(job_id)
        if current is None:
            raise JobNotFoundError(job_id)
        if current.status == JobStatus.CANCELLED:
            return current
        raise InvalidTransitionError(
            job_id, current.status.value, JobStatus.CANCELLED.value
        )

    async def get_job(self, job_id: UUID) -> BatchJob:
        job = await self._job_repo.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def get_job_progress(self, job_id: UUID) -> int:
        """Progress percentage (0-100) of a job."""
        job = await self.get_job(job_id)
        return job.progress

    async def get_scheduled_jobs(self) -> list[BatchJob]:
        """Pending and queued jobs, priority desc then oldest first."""
        return await self._job_repo.list_scheduled()

    async def get_active_jobs(self) -> list[BatchJob]:
        """Processing jobs, earliest started first."""
        return await self._job_repo.list_active()
