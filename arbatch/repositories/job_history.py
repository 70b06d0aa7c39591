"""Repository for batch job execution history (append-only)."""

from uuid import UUID

import structlog

from arbatch.jobs.models import BatchJobHistory
from arbatch.jobs.types import JobStatus
from arbatch.repositories.utils import ensure_json
from arbatch.utils.serialization import dump_json

logger = structlog.get_logger(__name__)


class BatchJobHistoryRepository:
    """History Store backed by ``batch_job_history``. Rows are never updated."""

    def __init__(self, pool):
        self._pool = pool

    async def append(self, history: BatchJobHistory) -> BatchJobHistory:
        """Insert one execution record."""
        query = """
            INSERT INTO batch_job_history (
                job_id, status, started_at, completed_at, duration_seconds,
                total_items, processed_items, failed_items,
                result_summary, error_logs
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, $10::jsonb)
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query,
                history.job_id,
                history.status.value,
                history.started_at,
                history.completed_at,
                history.duration_seconds,
                history.total_items,
                history.processed_items,
                history.failed_items,
                dump_json(history.result_summary) if history.result_summary else None,
                dump_json(history.error_logs) if history.error_logs else None,
            )
        logger.debug(
            "job_history_appended",
            job_id=str(history.job_id),
            status=history.status.value,
        )
        return self._row_to_history(row)

    async def list_for_job(self, job_id: UUID) -> list[BatchJobHistory]:
        """History rows of a job, newest first."""
        query = """
            SELECT * FROM batch_job_history
            WHERE job_id = $1
            ORDER BY created_at DESC
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, job_id)
        return [self._row_to_history(row) for row in rows]

    def _row_to_history(self, row) -> BatchJobHistory:
        return BatchJobHistory(
            id=row["id"],
            job_id=row["job_id"],
            status=JobStatus(row["status"]),
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            duration_seconds=row["duration_seconds"],
            total_items=row["total_items"],
            processed_items=row["processed_items"],
            failed_items=row["failed_items"],
            result_summary=ensure_json(row["result_summary"]),
            error_logs=ensure_json(row["error_logs"]),
            created_at=row["created_at"],
        )
