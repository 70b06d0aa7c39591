"""Cooperative cancellation for running batch jobs.

Cancelling a job only flips its stored status. Processors observe the flip
through a CancellationToken checked between items; the executor also trips
the token locally when a job runs past its timeout.
"""

import asyncio
from typing import Optional
from uuid import UUID

from arbatch.jobs.errors import JobCancelledError
from arbatch.jobs.types import JobStatus


class CancellationToken:
    """Per-execution cancellation signal backed by the job store."""

    def __init__(self, job_repo, job_id: UUID):
        self._job_repo = job_repo
        self._job_id = job_id
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def job_id(self) -> UUID:
        return self._job_id

    @property
    def tripped(self) -> bool:
        """True once cancellation has been observed or requested locally."""
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        """Trip the token without touching the store."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def is_cancelled(self) -> bool:
        """Check the local flag, then the stored job status.

        A job that has disappeared from the store counts as cancelled.
        """
        if self._event.is_set():
            return True
        job = await self._job_repo.get(self._job_id)
        if job is None:
            self.cancel("deleted")
        elif job.status == JobStatus.CANCELLED:
            self.cancel("cancelled")
        return self._event.is_set()

    async def raise_if_cancelled(self) -> None:
        if await self.is_cancelled():
            raise JobCancelledError(self._job_id)
