"""Repository for per-item batch queue entries."""

from typing import Any
from uuid import UUID

from arbatch.jobs.models import BatchQueueItem
from arbatch.jobs.types import QueueItemStatus
from arbatch.repositories.utils import build_set_clause, ensure_json
from arbatch.utils.serialization import dump_json

UPDATABLE_COLUMNS = (
    "status",
    "processing_data",
    "error_message",
    "retry_count",
    "started_at",
    "completed_at",
)
JSONB_COLUMNS = ("processing_data",)


class BatchQueueItemRepository:
    """Queue-item Store backed by ``batch_queue_items``, keyed by (job_id, item_id)."""

    def __init__(self, pool):
        self._pool = pool

    async def insert(self, item: BatchQueueItem) -> BatchQueueItem:
        """Insert an item, or restart it when a retried job reaches it again.

        Restarting bumps retry_count and clears the previous outcome.
        """
        query = """
            INSERT INTO batch_queue_items (
                job_id, item_type, item_id, status, processing_data,
                max_retries, started_at
            )
            VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7)
            ON CONFLICT (job_id, item_id) DO UPDATE SET
                status = EXCLUDED.status,
                started_at = EXCLUDED.started_at,
                processing_data = EXCLUDED.processing_data,
                retry_count = batch_queue_items.retry_count + 1,
                error_message = NULL,
                completed_at = NULL,
                updated_at = now()
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query,
                item.job_id,
                item.item_type,
                item.item_id,
                item.status.value,
                dump_json(item.processing_data) if item.processing_data else None,
                item.max_retries,
                item.started_at,
            )
        return self._row_to_item(row)

    async def update(self, job_id: UUID, item_id: str, **fields: Any) -> None:
        """Update an item by its (job_id, item_id) key."""
        if not fields:
            return
        set_clause, params = build_set_clause(
            fields, UPDATABLE_COLUMNS, JSONB_COLUMNS, start_idx=3
        )
        query = f"""
            UPDATE batch_queue_items SET
                {set_clause},
                updated_at = now()
            WHERE job_id = $1 AND item_id = $2
        """
        async with self._pool.acquire() as conn:
            await conn.execute(query, job_id, item_id, *params)

    async def list_for_job(self, job_id: UUID) -> list[BatchQueueItem]:
        query = """
            SELECT * FROM batch_queue_items
            WHERE job_id = $1
            ORDER BY created_at ASC
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, job_id)
        return [self._row_to_item(row) for row in rows]

    async def reset_for_job(self, job_id: UUID) -> int:
        """Put every item of a job back to pending (used by the retry action)."""
        query = """
            UPDATE batch_queue_items SET
                status = 'pending',
                error_message = NULL,
                completed_at = NULL,
                updated_at = now()
            WHERE job_id = $1
            RETURNING id
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, job_id)
        return len(rows)

    def _row_to_item(self, row) -> BatchQueueItem:
        return BatchQueueItem(
            id=row["id"],
            job_id=row["job_id"],
            item_type=row["item_type"],
            item_id=row["item_id"],
            status=QueueItemStatus(row["status"]),
            processing_data=ensure_json(row["processing_data"]),
            error_message=row["error_message"],
            retry_count=row["retry_count"],
            max_retries=row["max_retries"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
