"""Per-item progress bookkeeping shared by all processors.

A processor resolves its working set, calls ``set_total`` once, then runs
each unit of work through ``run_item``. An exception from one item is
recorded on its queue item and tallied; it never aborts the batch.
"""

from typing import Any, Awaitable, Callable, Optional

import structlog
from prometheus_client import Counter

from arbatch.jobs.models import BatchJob, BatchQueueItem, JobResult
from arbatch.jobs.types import QueueItemStatus
from arbatch.utils.serialization import json_serializable
from arbatch.utils.time import utc_now

logger = structlog.get_logger(__name__)

ITEMS_PROCESSED_TOTAL = Counter(
    "batch_job_items_processed_total",
    "Batch job items processed",
    ["job_type", "outcome"],  # completed, failed
)

ItemWork = Callable[[], Awaitable[Optional[dict[str, Any]]]]


def compute_progress(processed: int, failed: int, total: Optional[int]) -> int:
    """Percentage of items attempted, 0 when the total is unknown or empty."""
    if not total:
        return 0
    return min(100, round(100 * (processed + failed) / total))


class ItemTracker:
    """Tracks items for one job execution and persists counters as it goes."""

    def __init__(
        self,
        job: BatchJob,
        ctx: dict[str, Any],
        item_type: str,
    ):
        self._job = job
        self._job_repo = ctx["job_repo"]
        self._items_repo = ctx["items_repo"]
        self._token = ctx.get("cancellation")
        self._error_limit: int = ctx.get("error_summary_limit", 10)
        self._item_type = item_type
        self._log = logger.bind(job_id=str(job.id), job_type=job.type_name)

        self.total = 0
        self.processed = 0
        self.failed = 0
        self.errors: list[dict[str, Any]] = []

    async def set_total(self, total: int) -> None:
        """Write total_items once the working set is known."""
        self.total = total
        await self._job_repo.update_fields(
            self._job.id,
            total_items=total,
            processed_items=0,
            failed_items=0,
            progress=0,
        )
        self._log.info("job_working_set_resolved", total_items=total)

    async def run_item(
        self,
        item_id: Any,
        work: ItemWork,
        item_type: Optional[str] = None,
    ) -> bool:
        """Run one unit of work. Returns True if the item completed.

        Raises JobCancelledError (before starting the item) once the job
        has been cancelled.
        """
        if self._token is not None:
            await self._token.raise_if_cancelled()

        item_key = str(item_id)
        kind = item_type or self._item_type
        await self._items_repo.insert(
            BatchQueueItem(
                job_id=self._job.id,
                item_type=kind,
                item_id=item_key,
                status=QueueItemStatus.PROCESSING,
                started_at=utc_now(),
            )
        )

        try:
            data = await work()
        except Exception as e:
            self.failed += 1
            error = str(e) or e.__class__.__name__
            if len(self.errors) < self._error_limit:
                self.errors.append({"item_id": item_key, "error": error})
            self._log.warning("item_failed", item_type=kind, item_id=item_key, error=error)
            await self._items_repo.update(
                self._job.id,
                item_key,
                status=QueueItemStatus.FAILED,
                error_message=error,
                completed_at=utc_now(),
            )
            ITEMS_PROCESSED_TOTAL.labels(
                job_type=self._job.type_name, outcome="failed"
            ).inc()
            ok = False
        else:
            self.processed += 1
            await self._items_repo.update(
                self._job.id,
                item_key,
                status=QueueItemStatus.COMPLETED,
                processing_data=json_serializable(data) if data else None,
                completed_at=utc_now(),
            )
            ITEMS_PROCESSED_TOTAL.labels(
                job_type=self._job.type_name, outcome="completed"
            ).inc()
            ok = True

        await self._job_repo.update_fields(
            self._job.id,
            processed_items=self.processed,
            failed_items=self.failed,
            progress=compute_progress(self.processed, self.failed, self.total),
        )
        return ok

    def result(self, summary: dict[str, Any]) -> JobResult:
        """Build the processor result; item errors are appended to the summary."""
        return JobResult(
            total=self.total,
            processed=self.processed,
            failed=self.failed,
            summary={**summary, "errors": list(self.errors)},
        )
