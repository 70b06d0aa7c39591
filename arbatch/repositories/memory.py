"""In-memory stores.

Used when no database is configured and by the scheduler tests. Each store
guards its state with an asyncio.Lock, which makes claim_next atomic within
one process. Stored objects are copied on the way in and out.
"""

import asyncio
import itertools
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID, uuid4

import structlog

from arbatch.jobs.models import BatchJob, BatchJobHistory, BatchQueueItem
from arbatch.jobs.transitions import validate_transition
from arbatch.jobs.types import (
    BatchJobType,
    JobStatus,
    JobTypeName,
    QueueItemStatus,
    ScheduleType,
    parse_job_type,
)
from arbatch.repositories.jobs import UPDATABLE_COLUMNS as JOB_COLUMNS
from arbatch.repositories.queue_items import UPDATABLE_COLUMNS as ITEM_COLUMNS
from arbatch.utils.time import utc_now

logger = structlog.get_logger(__name__)


def _check_columns(fields: dict[str, Any], allowed: Sequence[str]) -> None:
    for name in fields:
        if name not in allowed:
            raise ValueError(f"Unknown or read-only column: {name}")


class InMemoryJobStore:
    """Job Store kept in a dict."""

    def __init__(self):
        self._jobs: dict[UUID, BatchJob] = {}
        self._seq: dict[UUID, int] = {}
        self._counter = itertools.count()
        self._lock = asyncio.Lock()

    async def create(
        self,
        name: str,
        job_type: JobTypeName,
        status: JobStatus,
        schedule_type: ScheduleType,
        config: Optional[dict[str, Any]] = None,
        priority: int = 5,
        scheduled_at: Optional[datetime] = None,
        cron_expression: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> BatchJob:
        now = utc_now()
        job = BatchJob(
            id=uuid4(),
            name=name,
            type=parse_job_type(job_type),
            status=status,
            schedule_type=schedule_type,
            config=dict(config or {}),
            priority=priority,
            scheduled_at=scheduled_at,
            cron_expression=cron_expression,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._jobs[job.id] = job
            self._seq[job.id] = next(self._counter)
        return replace(job)

    async def get(self, job_id: UUID) -> Optional[BatchJob]:
        job = self._jobs.get(job_id)
        return replace(job) if job else None

    async def update_fields(self, job_id: UUID, **fields: Any) -> Optional[BatchJob]:
        _check_columns(fields, JOB_COLUMNS)
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            updated = replace(job, **fields, updated_at=utc_now())
            self._jobs[job_id] = updated
        return replace(updated)

    async def transition(
        self,
        job_id: UUID,
        from_statuses: Sequence[JobStatus],
        to_status: JobStatus,
        **fields: Any,
    ) -> Optional[BatchJob]:
        """Compare-and-swap a job's status; None if it no longer matches."""
        for from_status in from_statuses:
            validate_transition(from_status, to_status, job_id)
        _check_columns(fields, JOB_COLUMNS)

        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status not in from_statuses:
                return None
            updated = replace(job, **fields, status=to_status, updated_at=utc_now())
            self._jobs[job_id] = updated
        return replace(updated)

    async def claim_next(self, worker_id: str) -> Optional[BatchJob]:
        """Atomically move the best queued job to processing."""
        async with self._lock:
            queued = [j for j in self._jobs.values() if j.status == JobStatus.QUEUED]
            if not queued:
                return None
            job = min(queued, key=self._dispatch_key)
            now = utc_now()
            claimed = replace(
                job,
                status=JobStatus.PROCESSING,
                claimed_by=worker_id,
                started_at=now,
                completed_at=None,
                error_message=None,
                updated_at=now,
            )
            self._jobs[job.id] = claimed

        logger.info(
            "job_claimed",
            job_id=str(claimed.id),
            job_type=claimed.type_name,
            priority=claimed.priority,
            worker_id=worker_id,
        )
        return replace(claimed)

    async def promote_due(self, now: datetime) -> list[UUID]:
        promoted = []
        async with self._lock:
            for job in sorted(self._jobs.values(), key=self._dispatch_key):
                if (
                    job.status == JobStatus.PENDING
                    and job.schedule_type == ScheduleType.SCHEDULED
                    and job.scheduled_at is not None
                    and job.scheduled_at <= now
                ):
                    self._jobs[job.id] = replace(
                        job, status=JobStatus.QUEUED, updated_at=utc_now()
                    )
                    promoted.append(job.id)
        return promoted

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        job_type: Optional[BatchJobType] = None,
        schedule_type: Optional[ScheduleType] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[BatchJob], int]:
        jobs = [
            j
            for j in self._jobs.values()
            if (status is None or j.status == status)
            and (job_type is None or j.type == job_type)
            and (schedule_type is None or j.schedule_type == schedule_type)
            and (created_from is None or j.created_at >= created_from)
            and (created_to is None or j.created_at <= created_to)
        ]
        jobs.sort(key=lambda j: (j.created_at, self._seq[j.id]), reverse=True)
        page = jobs[offset : offset + limit]
        return [replace(j) for j in page], len(jobs)

    async def list_scheduled(self) -> list[BatchJob]:
        jobs = [
            j
            for j in self._jobs.values()
            if j.status in (JobStatus.PENDING, JobStatus.QUEUED)
        ]
        return [replace(j) for j in sorted(jobs, key=self._dispatch_key)]

    async def list_active(self) -> list[BatchJob]:
        jobs = [j for j in self._jobs.values() if j.status == JobStatus.PROCESSING]
        jobs.sort(
            key=lambda j: (-j.priority, j.started_at or j.created_at, self._seq[j.id])
        )
        return [replace(j) for j in jobs]

    async def delete(self, job_id: UUID) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status == JobStatus.PROCESSING:
                return False
            del self._jobs[job_id]
            del self._seq[job_id]
        logger.info("job_deleted", job_id=str(job_id))
        return True

    async def ping(self) -> bool:
        return True

    def _dispatch_key(self, job: BatchJob) -> tuple:
        return (-job.priority, job.created_at, self._seq[job.id])


class InMemoryHistoryStore:
    """Append-only History Store."""

    def __init__(self):
        self._rows: list[BatchJobHistory] = []

    async def append(self, history: BatchJobHistory) -> BatchJobHistory:
        row = replace(history, id=history.id or uuid4())
        self._rows.append(row)
        return replace(row)

    async def list_for_job(self, job_id: UUID) -> list[BatchJobHistory]:
        rows = [r for r in self._rows if r.job_id == job_id]
        return [replace(r) for r in reversed(rows)]


class InMemoryQueueItemStore:
    """Queue-item Store keyed by (job_id, item_id)."""

    def __init__(self):
        self._items: dict[tuple[UUID, str], BatchQueueItem] = {}

    async def insert(self, item: BatchQueueItem) -> BatchQueueItem:
        key = (item.job_id, item.item_id)
        existing = self._items.get(key)
        if existing is None:
            stored = replace(item, id=item.id or uuid4())
        else:
            stored = replace(
                existing,
                status=item.status,
                started_at=item.started_at,
                processing_data=item.processing_data,
                retry_count=existing.retry_count + 1,
                error_message=None,
                completed_at=None,
                updated_at=utc_now(),
            )
        self._items[key] = stored
        return replace(stored)

    async def update(self, job_id: UUID, item_id: str, **fields: Any) -> None:
        _check_columns(fields, ITEM_COLUMNS)
        key = (job_id, item_id)
        item = self._items.get(key)
        if item is None:
            return
        self._items[key] = replace(item, **fields, updated_at=utc_now())

    async def list_for_job(self, job_id: UUID) -> list[BatchQueueItem]:
        items = [i for i in self._items.values() if i.job_id == job_id]
        return [replace(i) for i in sorted(items, key=lambda i: i.created_at)]

    async def reset_for_job(self, job_id: UUID) -> int:
        count = 0
        for key, item in self._items.items():
            if item.job_id == job_id:
                self._items[key] = replace(
                    item,
                    status=QueueItemStatus.PENDING,
                    error_message=None,
                    completed_at=None,
                    updated_at=utc_now(),
                )
                count += 1
        return count
