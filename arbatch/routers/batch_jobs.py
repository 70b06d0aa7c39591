"""Batch job endpoints.

Thin layer over the BatchScheduler facade. The retry action, which moves a
failed job back to queued, lives here: it is an operator decision, never
something the scheduler does on its own.
"""

from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Query, status

from arbatch.jobs.errors import InvalidTransitionError, JobNotFoundError
from arbatch.jobs.models import BatchJob
from arbatch.jobs.scheduler import BatchScheduler
from arbatch.jobs.types import BatchJobType, JobStatus, ScheduleType
from arbatch.schemas.batch_jobs import (
    CreateBatchJobRequest,
    JobActionRequest,
    JobProgressResponse,
)

router = APIRouter(prefix="/batch-jobs", tags=["batch-jobs"])
logger = structlog.get_logger(__name__)

# Scheduler handle (set during lifespan)
_scheduler: Optional[BatchScheduler] = None


def set_scheduler(scheduler: Optional[BatchScheduler]) -> None:
    """Set the scheduler used by this router."""
    global _scheduler
    _scheduler = scheduler


def _get_scheduler() -> BatchScheduler:
    if _scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Batch scheduler not available",
        )
    return _scheduler


def _not_found(job_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Batch job {job_id} not found",
    )


def _conflict(e: InvalidTransitionError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


async def requeue_failed_job(scheduler: BatchScheduler, job_id: UUID) -> BatchJob:
    """Reset a failed job to queued and nudge the dispatcher.

    Counters, progress and the error are cleared and the job's queue items
    go back to pending, so the next run starts from a clean slate.

    Raises:
        JobNotFoundError: If the job does not exist
        InvalidTransitionError: If the job is not failed
    """
    job = await scheduler.job_repo.transition(
        job_id,
        [JobStatus.FAILED],
        JobStatus.QUEUED,
        error_message=None,
        result_summary=None,
        progress=0,
        total_items=None,
        processed_items=0,
        failed_items=0,
        claimed_by=None,
        started_at=None,
        completed_at=None,
    )
    if job is None:
        current = await scheduler.job_repo.get(job_id)
        if current is None:
            raise JobNotFoundError(job_id)
        raise InvalidTransitionError(
            job_id, current.status.value, JobStatus.QUEUED.value
        )

    reset = await scheduler.items_repo.reset_for_job(job_id)
    logger.info("job_requeued", job_id=str(job_id), items_reset=reset)
    scheduler.dispatcher.trigger()
    return job


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Job created"},
        422: {"description": "Invalid job definition"},
        503: {"description": "Scheduler not available"},
    },
)
async def create_batch_job(body: CreateBatchJobRequest) -> dict[str, Any]:
    """Create a batch job. Immediate jobs start as soon as a slot is free."""
    scheduler = _get_scheduler()
    try:
        job_id = await scheduler.schedule_job(body.to_spec())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    job = await scheduler.get_job(job_id)
    return {"job": job.to_dict()}


@router.get("")
async def list_batch_jobs(
    job_status: Optional[JobStatus] = Query(None, alias="status"),
    job_type: Optional[BatchJobType] = Query(None, alias="type"),
    schedule_type: Optional[ScheduleType] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> dict[str, Any]:
    """List jobs, newest first."""
    scheduler = _get_scheduler()
    jobs, total = await scheduler.job_repo.list_jobs(
        status=job_status,
        job_type=job_type,
        schedule_type=schedule_type,
        limit=limit,
        offset=offset,
    )
    return {
        "jobs": [job.to_dict() for job in jobs],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/scheduled")
async def list_scheduled_jobs() -> dict[str, Any]:
    """Pending and queued jobs in dispatch order."""
    jobs = await _get_scheduler().get_scheduled_jobs()
    return {"jobs": [job.to_dict() for job in jobs]}


@router.get("/active")
async def list_active_jobs() -> dict[str, Any]:
    """Jobs currently processing."""
    jobs = await _get_scheduler().get_active_jobs()
    return {"jobs": [job.to_dict() for job in jobs]}


@router.get("/{job_id}")
async def get_batch_job(job_id: UUID) -> dict[str, Any]:
    """A job with its execution history and queue items."""
    scheduler = _get_scheduler()
    try:
        job = await scheduler.get_job(job_id)
    except JobNotFoundError:
        raise _not_found(job_id)

    history = await scheduler.history_repo.list_for_job(job_id)
    items = await scheduler.items_repo.list_for_job(job_id)
    return {
        "job": job.to_dict(),
        "history": [h.to_dict() for h in history],
        "queue_items": [i.to_dict() for i in items],
    }


@router.get("/{job_id}/progress", response_model=JobProgressResponse)
async def get_batch_job_progress(job_id: UUID) -> JobProgressResponse:
    try:
        progress = await _get_scheduler().get_job_progress(job_id)
    except JobNotFoundError:
        raise _not_found(job_id)
    return JobProgressResponse(job_id=str(job_id), progress=progress)


@router.put(
    "/{job_id}",
    responses={
        404: {"description": "Job not found"},
        409: {"description": "Action not allowed in the job's current status"},
    },
)
async def update_batch_job(job_id: UUID, body: JobActionRequest) -> dict[str, Any]:
    """Cancel or retry a job."""
    scheduler = _get_scheduler()
    try:
        if body.action == "cancel":
            job = await scheduler.cancel_job(job_id)
        else:
            job = await requeue_failed_job(scheduler, job_id)
    except JobNotFoundError:
        raise _not_found(job_id)
    except InvalidTransitionError as e:
        raise _conflict(e)

    logger.info("job_action_applied", job_id=str(job_id), action=body.action)
    return {"job": job.to_dict()}


@router.delete(
    "/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        404: {"description": "Job not found"},
        409: {"description": "Job is processing"},
    },
)
async def delete_batch_job(job_id: UUID) -> None:
    """Delete a job that is not processing."""
    scheduler = _get_scheduler()
    if await scheduler.job_repo.delete(job_id):
        return None

    job = await scheduler.job_repo.get(job_id)
    if job is None:
        raise _not_found(job_id)
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Cannot delete a job while it is processing; cancel it first",
    )
