"""Scheduled-job poll loop.

Every tick promotes scheduled jobs whose ``scheduled_at`` has passed from
pending to queued, then asks the dispatcher to fill free slots.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from prometheus_client import Counter, Gauge

from arbatch.utils.time import utc_now

logger = structlog.get_logger(__name__)


# =============================================================================
# Prometheus Metrics
# =============================================================================

POLL_RUNS_TOTAL = Counter(
    "batch_schedule_poll_runs_total",
    "Scheduled-job poll runs executed",
    ["status"],  # promoted, idle, failure
)
JOBS_PROMOTED_TOTAL = Counter(
    "batch_scheduled_jobs_promoted_total",
    "Scheduled jobs promoted from pending to queued",
)
POLL_LAST_RUN_TIMESTAMP = Gauge(
    "batch_schedule_poll_last_run_timestamp",
    "Timestamp of last scheduled-job poll run (unix seconds)",
)
POLL_ENABLED = Gauge(
    "batch_schedule_poll_enabled",
    "Whether the scheduled-job poll loop is running (1=running, 0=stopped)",
)


@dataclass
class PollTickResult:
    """Result of a single poll tick."""

    promoted: int = 0
    dispatched: int = 0
    duration_ms: int = 0


class ScheduledJobPoller:
    """Background loop promoting due scheduled jobs."""

    def __init__(self, job_repo, dispatcher, interval_s: float = 60.0):
        self._job_repo = job_repo
        self._dispatcher = dispatcher
        self._interval_s = interval_s

        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._running = False

        self._last_run_at: Optional[datetime] = None
        self._last_result: Optional[PollTickResult] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def last_run_at(self) -> Optional[datetime]:
        return self._last_run_at

    async def start(self) -> None:
        """Start the poll loop as a background task."""
        if self._running:
            logger.warning("schedule_poller_already_running")
            return

        logger.info("schedule_poller_starting", interval_s=self._interval_s)
        POLL_ENABLED.set(1)
        self._stop_event.clear()
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop the poll loop, waiting for a tick in progress."""
        if not self._running:
            return

        self._stop_event.set()
        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("schedule_poller_stop_timeout")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass

        self._running = False
        POLL_ENABLED.set(0)
        logger.info("schedule_poller_stopped")

    async def run_once(self, now: Optional[datetime] = None) -> PollTickResult:
        """Run a single tick (used by the loop and for manual triggering)."""
        start_time = time.monotonic()
        result = PollTickResult()

        promoted_ids = await self._job_repo.promote_due(now or utc_now())
        result.promoted = len(promoted_ids)
        if promoted_ids:
            JOBS_PROMOTED_TOTAL.inc(len(promoted_ids))
            logger.info(
                "scheduled_jobs_promoted",
                count=len(promoted_ids),
                job_ids=[str(job_id) for job_id in promoted_ids],
            )

        result.dispatched = await self._dispatcher.dispatch_available()
        result.duration_ms = int((time.monotonic() - start_time) * 1000)
        return result

    # =========================================================================
    # Internal Methods
    # =========================================================================

    async def _poll_loop(self) -> None:
        """Main loop - runs until stop_event is set."""
        while not self._stop_event.is_set():
            try:
                result = await self.run_once()
                self._last_result = result
                self._last_run_at = utc_now()
                POLL_LAST_RUN_TIMESTAMP.set(self._last_run_at.timestamp())
                POLL_RUNS_TOTAL.labels(
                    status="promoted" if result.promoted else "idle"
                ).inc()
            except Exception as e:
                logger.exception("schedule_poll_tick_failed", error=str(e))
                POLL_RUNS_TOTAL.labels(status="failure").inc()

            # Wait for next tick (interruptible)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_s)
                break
            except asyncio.TimeoutError:
                pass
