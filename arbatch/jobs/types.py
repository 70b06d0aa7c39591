"""Batch job type definitions."""

from enum import Enum
from typing import Union


class BatchJobType(str, Enum):
    """Job types handled by the batch scheduler."""

    MARKER_OPTIMIZATION = "marker_optimization"
    MINDAR_GENERATION = "mindar_generation"
    CONTENT_UPDATE = "content_update"
    DATA_EXPORT = "data_export"
    STATISTICS_AGGREGATION = "statistics_aggregation"


# Job types read from storage that are not BatchJobType members stay raw strings.
JobTypeName = Union[BatchJobType, str]


def parse_job_type(value: str) -> JobTypeName:
    """Return the BatchJobType for a stored value, or the value itself if unknown."""
    try:
        return BatchJobType(value)
    except ValueError:
        return value


def job_type_value(job_type: JobTypeName) -> str:
    """Plain string form of a job type."""
    if isinstance(job_type, BatchJobType):
        return job_type.value
    return str(job_type)


class JobStatus(str, Enum):
    """Batch job lifecycle statuses."""

    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal (job won't change on its own)."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class ScheduleType(str, Enum):
    """When a job becomes eligible for dispatch."""

    IMMEDIATE = "immediate"
    SCHEDULED = "scheduled"
    RECURRING = "recurring"


class QueueItemStatus(str, Enum):
    """Per-item status inside a batch job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
