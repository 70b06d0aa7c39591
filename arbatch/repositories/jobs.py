"""Repository for batch job persistence (PostgreSQL)."""

from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

import structlog

from arbatch.jobs.models import BatchJob
from arbatch.jobs.transitions import validate_transition
from arbatch.jobs.types import BatchJobType, JobStatus, ScheduleType, parse_job_type
from arbatch.repositories.utils import build_set_clause, ensure_json
from arbatch.utils.serialization import dump_json

logger = structlog.get_logger(__name__)

# Columns writable through update_fields / transition
UPDATABLE_COLUMNS = (
    "name",
    "config",
    "priority",
    "scheduled_at",
    "cron_expression",
    "progress",
    "total_items",
    "processed_items",
    "failed_items",
    "error_message",
    "result_summary",
    "claimed_by",
    "started_at",
    "completed_at",
)
JSONB_COLUMNS = ("config", "result_summary")


class BatchJobRepository:
    """Job Store backed by the ``batch_jobs`` table."""

    def __init__(self, pool):
        self._pool = pool

    async def create(
        self,
        name: str,
        job_type: BatchJobType,
        status: JobStatus,
        schedule_type: ScheduleType,
        config: Optional[dict[str, Any]] = None,
        priority: int = 5,
        scheduled_at: Optional[datetime] = None,
        cron_expression: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> BatchJob:
        """Insert a new batch job."""
        query = """
            INSERT INTO batch_jobs (name, type, status, schedule_type, config,
                                    priority, scheduled_at, cron_expression, created_by)
            VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, $8, $9)
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query,
                name,
                job_type.value,
                status.value,
                schedule_type.value,
                dump_json(config or {}),
                priority,
                scheduled_at,
                cron_expression,
                created_by,
            )
        return self._row_to_job(row)

    async def get(self, job_id: UUID) -> Optional[BatchJob]:
        """Get a job by ID."""
        query = "SELECT * FROM batch_jobs WHERE id = $1"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, job_id)
        return self._row_to_job(row) if row else None

    async def update_fields(self, job_id: UUID, **fields: Any) -> Optional[BatchJob]:
        """Update columns of a job without touching its status."""
        if not fields:
            return await self.get(job_id)

        set_clause, params = build_set_clause(
            fields, UPDATABLE_COLUMNS, JSONB_COLUMNS, start_idx=2
        )
        query = f"""
            UPDATE batch_jobs SET
                {set_clause},
                updated_at = now()
            WHERE id = $1
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, job_id, *params)
        return self._row_to_job(row) if row else None

    async def transition(
        self,
        job_id: UUID,
        from_statuses: Sequence[JobStatus],
        to_status: JobStatus,
        **fields: Any,
    ) -> Optional[BatchJob]:
        """Compare-and-swap a job's status.

        The update only applies while the job is in one of ``from_statuses``.
        Returns the updated job, or None if the job is missing or its status
        had already moved on.

        Raises:
            InvalidTransitionError: If any from -> to edge is not legal
        """
        for from_status in from_statuses:
            validate_transition(from_status, to_status, job_id)

        set_clause, params = build_set_clause(
            fields, UPDATABLE_COLUMNS, JSONB_COLUMNS, start_idx=4
        )
        extra = f"{set_clause}," if set_clause else ""
        query = f"""
            UPDATE batch_jobs SET
                status = $2,
                {extra}
                updated_at = now()
            WHERE id = $1 AND status = ANY($3::text[])
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query,
                job_id,
                to_status.value,
                [s.value for s in from_statuses],
                *params,
            )

        if row is None:
            logger.info(
                "job_transition_skipped",
                job_id=str(job_id),
                to_status=to_status.value,
            )
            return None
        return self._row_to_job(row)

    async def claim_next(self, worker_id: str) -> Optional[BatchJob]:
        """Claim the next queued job using FOR UPDATE SKIP LOCKED.

        Highest priority first, then oldest. Returns None if nothing is
        queued or every candidate is locked by another claimer.
        """
        query = """
            WITH cte AS (
                SELECT id FROM batch_jobs
                WHERE status = 'queued'
                ORDER BY priority DESC, created_at ASC
                FOR UPDATE SKIP LOCKED
                LIMIT 1
            )
            UPDATE batch_jobs j SET
                status = 'processing',
                claimed_by = $1,
                started_at = now(),
                completed_at = NULL,
                error_message = NULL,
                updated_at = now()
            FROM cte
            WHERE j.id = cte.id
            RETURNING j.*
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, worker_id)

        if row:
            logger.info(
                "job_claimed",
                job_id=str(row["id"]),
                job_type=row["type"],
                priority=row["priority"],
                worker_id=worker_id,
            )
            return self._row_to_job(row)
        return None

    async def promote_due(self, now: datetime) -> list[UUID]:
        """Move pending scheduled jobs with scheduled_at <= now to queued."""
        query = """
            UPDATE batch_jobs SET
                status = 'queued',
                updated_at = now()
            WHERE status = 'pending'
              AND schedule_type = 'scheduled'
              AND scheduled_at <= $1
            RETURNING id
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, now)
        return [row["id"] for row in rows]

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
        """List jobs with filters and pagination, newest first.

        Returns:
            Tuple of (jobs list, total count)
        """
        conditions = []
        params: list[Any] = []

        def add(condition: str, value: Any) -> None:
            params.append(value)
            conditions.append(condition.format(idx=len(params)))

        if status:
            add("status = ${idx}", status.value)
        if job_type:
            add("type = ${idx}", job_type.value)
        if schedule_type:
            add("schedule_type = ${idx}", schedule_type.value)
        if created_from:
            add("created_at >= ${idx}", created_from)
        if created_to:
            add("created_at <= ${idx}", created_to)

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        param_idx = len(params) + 1
        query = f"""
            SELECT * FROM batch_jobs
            {where_clause}
            ORDER BY created_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
        """
        count_query = f"""
            SELECT COUNT(*) as total FROM batch_jobs
            {where_clause}
        """

        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, *params, limit, offset)
            count_row = await conn.fetchrow(count_query, *params)

        jobs = [self._row_to_job(row) for row in rows]
        total = count_row["total"] if count_row else 0
        return jobs, total

    async def list_scheduled(self) -> list[BatchJob]:
        """Pending and queued jobs, priority desc then oldest first."""
        query = """
            SELECT * FROM batch_jobs
            WHERE status IN ('pending', 'queued')
            ORDER BY priority DESC, created_at ASC
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query)
        return [self._row_to_job(row) for row in rows]

    async def list_active(self) -> list[BatchJob]:
        """Processing jobs, priority desc then earliest started first."""
        query = """
            SELECT * FROM batch_jobs
            WHERE status = 'processing'
            ORDER BY priority DESC, started_at ASC
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query)
        return [self._row_to_job(row) for row in rows]

    async def delete(self, job_id: UUID) -> bool:
        """Delete a job unless it is processing. History and items cascade."""
        query = """
            DELETE FROM batch_jobs
            WHERE id = $1 AND status <> 'processing'
            RETURNING id
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, job_id)
        if row:
            logger.info("job_deleted", job_id=str(job_id))
        return row is not None

    async def ping(self) -> bool:
        """Check the database is reachable."""
        async with self._pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return True

    def _row_to_job(self, row) -> BatchJob:
        """Convert a database row to a BatchJob model."""
        return BatchJob(
            id=row["id"],
            name=row["name"],
            type=parse_job_type(row["type"]),
            status=JobStatus(row["status"]),
            schedule_type=ScheduleType(row["schedule_type"]),
            config=ensure_json(row["config"]) or {},
            priority=row["priority"],
            scheduled_at=row["scheduled_at"],
            cron_expression=row["cron_expression"],
            progress=row["progress"],
            total_items=row["total_items"],
            processed_items=row["processed_items"],
            failed_items=row["failed_items"],
            error_message=row["error_message"],
            result_summary=ensure_json(row["result_summary"]),
            claimed_by=row["claimed_by"],
            created_by=row["created_by"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )
