"""Concurrency-limited dispatcher.

Claims queued jobs from the store (priority desc, then oldest first) while a
slot is free and runs each one as its own asyncio task. When a job's task
finishes, its slot is released and the dispatcher refills free slots, so the
queue drains without outside prompting.

The in-flight map is only a local capacity counter. Mutual exclusion across
processes comes from the store's atomic claim.
"""

import asyncio
import traceback
from typing import Optional
from uuid import UUID

import structlog
from prometheus_client import Counter, Gauge

from arbatch.jobs.models import BatchJob

logger = structlog.get_logger(__name__)


# =============================================================================
# Prometheus Metrics
# =============================================================================

JOBS_CLAIMED_TOTAL = Counter(
    "batch_jobs_claimed_total",
    "Batch jobs claimed by this dispatcher",
    ["job_type"],
)
JOBS_IN_FLIGHT = Gauge(
    "batch_jobs_in_flight",
    "Batch jobs currently occupying a dispatcher slot",
)
DISPATCHER_CAPACITY = Gauge(
    "batch_dispatcher_capacity",
    "Configured maximum concurrent batch jobs",
)


class JobDispatcher:
    """Runs at most ``max_concurrent_jobs`` jobs at once."""

    def __init__(
        self,
        job_repo,
        executor,
        worker_id: str,
        max_concurrent_jobs: int = 3,
    ):
        if max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")
        self._job_repo = job_repo
        self._executor = executor
        self._worker_id = worker_id
        self._max_concurrent_jobs = max_concurrent_jobs

        self._in_flight: dict[UUID, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._closed = False
        DISPATCHER_CAPACITY.set(max_concurrent_jobs)

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def max_concurrent_jobs(self) -> int:
        return self._max_concurrent_jobs

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    @property
    def in_flight_ids(self) -> list[UUID]:
        return list(self._in_flight)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def dispatch_next(self) -> Optional[BatchJob]:
        """Claim and start one queued job if a slot is free.

        Returns the claimed job, or None when at capacity or nothing is
        queued (including losing a claim race to another process).
        """
        async with self._lock:
            if self._closed:
                return None
            if len(self._in_flight) >= self._max_concurrent_jobs:
                logger.debug("dispatch_at_capacity", in_flight=len(self._in_flight))
                return None

            job = await self._job_repo.claim_next(self._worker_id)
            if job is None:
                logger.debug("dispatch_no_job")
                return None

            task = asyncio.create_task(self._run(job), name=f"batch-job-{job.id}")
            self._in_flight[job.id] = task
            JOBS_IN_FLIGHT.set(len(self._in_flight))
            JOBS_CLAIMED_TOTAL.labels(job_type=job.type_name).inc()

        logger.info(
            "job_dispatched",
            job_id=str(job.id),
            job_type=job.type_name,
            priority=job.priority,
            in_flight=len(self._in_flight),
        )
        return job

    async def dispatch_available(self) -> int:
        """Fill every free slot. Returns the number of jobs started."""
        started = 0
        while await self.dispatch_next() is not None:
            started += 1
        return started

    def trigger(self) -> None:
        """Schedule a dispatch pass without waiting for it."""
        if self._closed:
            return
        task = asyncio.create_task(self._dispatch_safely())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def join(self) -> None:
        """Wait until no job is running and no dispatch pass is pending."""
        while self._in_flight or self._background:
            await asyncio.gather(
                *self._in_flight.values(), *self._background, return_exceptions=True
            )

    async def close(self, timeout: Optional[float] = 30.0) -> None:
        """Stop claiming and wait for in-flight jobs, cancelling stragglers."""
        self._closed = True
        tasks = [*self._in_flight.values(), *self._background]
        if not tasks:
            return

        logger.info("dispatcher_draining", in_flight=len(self._in_flight))
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning("dispatcher_drain_timeout", cancelled=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    # =========================================================================
    # Internal Methods
    # =========================================================================

    async def _run(self, job: BatchJob) -> None:
        try:
            await self._executor.execute_job(job)
        except Exception as e:
            logger.error(
                "job_execution_error",
                job_id=str(job.id),
                error=str(e),
                traceback=traceback.format_exc(),
            )
        finally:
            self._in_flight.pop(job.id, None)
            JOBS_IN_FLIGHT.set(len(self._in_flight))

        await self._dispatch_safely()

    async def _dispatch_safely(self) -> None:
        try:
            await self.dispatch_available()
        except Exception as e:
            logger.error(
                "dispatch_failed", error=str(e), traceback=traceback.format_exc()
            )
