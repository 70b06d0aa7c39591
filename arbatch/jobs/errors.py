"""Batch job exceptions."""

from typing import Optional
from uuid import UUID


class BatchJobError(Exception):
    """Base class for batch scheduler errors."""


class JobNotFoundError(BatchJobError):
    def __init__(self, job_id: UUID):
        self.job_id = job_id
        super().__init__(f"Batch job not found: {job_id}")


class InvalidTransitionError(BatchJobError):
    """A status change that the job lifecycle does not allow."""

    def __init__(self, job_id: Optional[UUID], from_status: str, to_status: str):
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid status transition for job {job_id}: {from_status} -> {to_status}"
        )


class JobConfigurationError(BatchJobError):
    """No processor for the job type, or the job config cannot be used.

    Always job-level fatal.
    """


class JobCancelledError(BatchJobError):
    """Raised between items once a job has been cancelled."""

    def __init__(self, job_id: UUID):
        self.job_id = job_id
        super().__init__(f"Batch job cancelled: {job_id}")


class JobTimeoutError(BatchJobError):
    def __init__(self, job_id: UUID, timeout_s: float):
        self.job_id = job_id
        self.timeout_s = timeout_s
        super().__init__(f"Batch job {job_id} exceeded timeout of {timeout_s:g}s")
