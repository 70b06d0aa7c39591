"""Job executor - runs one claimed batch job end to end."""

import asyncio
import traceback
from datetime import datetime
from typing import Any, Optional

import sentry_sdk
import structlog
from prometheus_client import Counter, Histogram

from arbatch.jobs.cancellation import CancellationToken
from arbatch.jobs.errors import (
    JobCancelledError,
    JobConfigurationError,
    JobTimeoutError,
)
from arbatch.jobs.models import BatchJob, BatchJobHistory, JobResult
from arbatch.jobs.registry import ProcessorRegistry, default_registry
from arbatch.jobs.types import JobStatus
from arbatch.utils.time import utc_now

logger = structlog.get_logger(__name__)


# =============================================================================
# Prometheus Metrics
# =============================================================================

JOBS_FINISHED_TOTAL = Counter(
    "batch_jobs_finished_total",
    "Batch jobs that reached a terminal status",
    ["job_type", "status"],
)
JOB_DURATION_SECONDS = Histogram(
    "batch_job_duration_seconds",
    "Wall-clock duration of batch job executions",
    ["job_type"],
    buckets=(1, 5, 15, 60, 300, 900, 1800, 3600, 7200),
)


class JobExecutor:
    """Executes a job that has already been claimed (status processing).

    Every outcome is written with a compare-and-swap from processing, so a
    cancel that lands while the processor runs is never overwritten. One
    history row is appended per execution.
    """

    def __init__(
        self,
        job_repo,
        history_repo,
        items_repo,
        registry: Optional[ProcessorRegistry] = None,
        context: Optional[dict[str, Any]] = None,
        timeout_s: Optional[float] = None,
        error_summary_limit: int = 10,
    ):
        self._job_repo = job_repo
        self._history_repo = history_repo
        self._items_repo = items_repo
        self._registry = registry or default_registry
        self._context = context or {}
        self._timeout_s = timeout_s
        self._error_summary_limit = error_summary_limit

    async def execute_job(self, job: BatchJob) -> JobStatus:
        """Run the processor for a claimed job and record the outcome.

        Returns the status the job ended in.
        """
        log = logger.bind(job_id=str(job.id), job_type=job.type_name)
        started_at = job.started_at or utc_now()
        log.info("job_executing", priority=job.priority)

        try:
            processor = self._registry.get_processor(job.type)
        except KeyError:
            error = JobConfigurationError(
                f"No processor registered for job type: {job.type_name}"
            )
            log.error("job_no_processor", error=str(error))
            return await self._finish_failed(job, started_at, error, None, log)

        token = CancellationToken(self._job_repo, job.id)
        ctx = {
            **self._context,
            "job_repo": self._job_repo,
            "items_repo": self._items_repo,
            "history_repo": self._history_repo,
            "cancellation": token,
            "error_summary_limit": self._error_summary_limit,
        }

        deadline = asyncio.timeout(self._timeout_s or None)
        try:
            async with deadline:
                result = await processor(job, ctx)

        except JobCancelledError:
            log.info("job_cancel_observed")
            return await self._finish_cancelled(job, started_at, log)

        except asyncio.CancelledError:
            # Shutdown: record the interruption, then let cancellation continue
            log.warning("job_interrupted")
            await self._finish_failed(
                job,
                started_at,
                RuntimeError("Job interrupted by scheduler shutdown"),
                None,
                log,
            )
            raise

        except TimeoutError as e:
            if not deadline.expired():
                # Raised by the processor itself (e.g. a statement timeout)
                return await self._processor_failed(job, started_at, e, log)
            token.cancel("timeout")
            error = JobTimeoutError(job.id, self._timeout_s)
            log.error("job_timed_out", timeout_s=self._timeout_s)
            sentry_sdk.capture_exception(error)
            return await self._finish_failed(job, started_at, error, None, log)

        except Exception as e:
            return await self._processor_failed(job, started_at, e, log)

        return await self._finish_completed(job, started_at, result, log)

    async def _processor_failed(
        self, job: BatchJob, started_at: datetime, e: Exception, log
    ) -> JobStatus:
        tb = "".join(traceback.format_exception(e))
        log.error("job_processor_failed", error=str(e), traceback=tb)
        sentry_sdk.capture_exception(e)
        return await self._finish_failed(job, started_at, e, tb, log)

    # =========================================================================
    # Outcomes
    # =========================================================================

    async def _finish_completed(
        self, job: BatchJob, started_at: datetime, result: JobResult, log
    ) -> JobStatus:
        completed_at = utc_now()
        updated = await self._job_repo.transition(
            job.id,
            [JobStatus.PROCESSING],
            JobStatus.COMPLETED,
            completed_at=completed_at,
            total_items=result.total,
            processed_items=result.processed,
            failed_items=result.failed,
            progress=100,
            result_summary=result.summary,
            error_message=None,
        )

        if updated is None:
            status = await self._current_status(job)
            log.info("job_completion_superseded", status=status.value)
        else:
            status = JobStatus.COMPLETED
            log.info(
                "job_completed",
                total_items=result.total,
                processed_items=result.processed,
                failed_items=result.failed,
            )

        await self._append_history(
            job,
            status,
            started_at,
            completed_at,
            total=result.total,
            processed=result.processed,
            failed=result.failed,
            result_summary=result.summary,
        )
        return status

    async def _finish_failed(
        self,
        job: BatchJob,
        started_at: datetime,
        error: BaseException,
        tb: Optional[str],
        log,
    ) -> JobStatus:
        completed_at = utc_now()
        message = str(error) or error.__class__.__name__
        updated = await self._job_repo.transition(
            job.id,
            [JobStatus.PROCESSING],
            JobStatus.FAILED,
            completed_at=completed_at,
            error_message=message,
        )

        current = updated or await self._job_repo.get(job.id)
        status = JobStatus.FAILED if updated else await self._current_status(job)
        if updated is not None:
            log.warning("job_failed", error=message)

        error_log: dict[str, Any] = {
            "message": message,
            "error_type": error.__class__.__name__,
            "timestamp": completed_at.isoformat(),
        }
        if tb:
            error_log["traceback"] = tb

        await self._append_history(
            job,
            status,
            started_at,
            completed_at,
            total=(current.total_items or 0) if current else 0,
            processed=current.processed_items if current else 0,
            failed=current.failed_items if current else 0,
            error_logs=[error_log],
        )
        return status

    async def _finish_cancelled(
        self, job: BatchJob, started_at: datetime, log
    ) -> JobStatus:
        completed_at = utc_now()
        # Normally already cancelled in the store; this only fills completed_at.
        await self._job_repo.transition(
            job.id,
            [JobStatus.PROCESSING],
            JobStatus.CANCELLED,
            completed_at=completed_at,
        )
        current = await self._job_repo.get(job.id)
        log.info("job_cancelled")
        await self._append_history(
            job,
            JobStatus.CANCELLED,
            started_at,
            completed_at,
            total=(current.total_items or 0) if current else 0,
            processed=current.processed_items if current else 0,
            failed=current.failed_items if current else 0,
        )
        return JobStatus.CANCELLED

    async def _current_status(self, job: BatchJob) -> JobStatus:
        current = await self._job_repo.get(job.id)
        return current.status if current else JobStatus.CANCELLED

    async def _append_history(
        self,
        job: BatchJob,
        status: JobStatus,
        started_at: datetime,
        completed_at: datetime,
        total: int,
        processed: int,
        failed: int,
        result_summary: Optional[dict[str, Any]] = None,
        error_logs: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        duration = max(0.0, (completed_at - started_at).total_seconds())
        JOBS_FINISHED_TOTAL.labels(job_type=job.type_name, status=status.value).inc()
        JOB_DURATION_SECONDS.labels(job_type=job.type_name).observe(duration)

        await self._history_repo.append(
            BatchJobHistory(
                job_id=job.id,
                status=status,
                started_at=started_at,
                completed_at=completed_at,
                total_items=total,
                processed_items=processed,
                failed_items=failed,
                duration_seconds=int(duration),
                result_summary=result_summary,
                error_logs=error_logs,
            )
        )
