"""Batch job system package."""

from arbatch.jobs.errors import (
    BatchJobError,
    InvalidTransitionError,
    JobCancelledError,
    JobConfigurationError,
    JobNotFoundError,
    JobTimeoutError,
)
from arbatch.jobs.models import BatchJob, BatchJobHistory, BatchQueueItem, JobResult, JobSpec
from arbatch.jobs.registry import ProcessorRegistry, default_registry
from arbatch.jobs.types import BatchJobType, JobStatus, QueueItemStatus, ScheduleType

__all__ = [
    "BatchJobType",
    "JobStatus",
    "QueueItemStatus",
    "ScheduleType",
    "BatchJob",
    "BatchJobHistory",
    "BatchQueueItem",
    "JobResult",
    "JobSpec",
    "ProcessorRegistry",
    "default_registry",
    "BatchJobError",
    "JobNotFoundError",
    "InvalidTransitionError",
    "JobConfigurationError",
    "JobCancelledError",
    "JobTimeoutError",
]
