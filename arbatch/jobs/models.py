"""Batch job data models."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from arbatch.jobs.types import (
    BatchJobType,
    JobStatus,
    JobTypeName,
    QueueItemStatus,
    ScheduleType,
    job_type_value,
)
from arbatch.utils.serialization import json_serializable
from arbatch.utils.time import utc_now


@dataclass
class BatchJob:
    """A unit of schedulable batch work."""

    id: UUID
    name: str
    type: JobTypeName
    status: JobStatus
    schedule_type: ScheduleType = ScheduleType.IMMEDIATE
    config: dict[str, Any] = field(default_factory=dict)
    priority: int = 5

    scheduled_at: Optional[datetime] = None
    cron_expression: Optional[str] = None

    # Progress counters (total_items is None until the processor resolves it)
    progress: int = 0
    total_items: Optional[int] = None
    processed_items: int = 0
    failed_items: int = 0

    error_message: Optional[str] = None
    result_summary: Optional[dict[str, Any]] = None

    # Claim owner
    claimed_by: Optional[str] = None
    created_by: Optional[str] = None

    # Lifecycle timestamps
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return json_serializable(asdict(self))

    @property
    def type_name(self) -> str:
        return job_type_value(self.type)


@dataclass
class BatchJobHistory:
    """One immutable record per execution attempt."""

    job_id: UUID
    status: JobStatus
    started_at: Optional[datetime]
    completed_at: datetime
    total_items: int = 0
    processed_items: int = 0
    failed_items: int = 0
    duration_seconds: Optional[int] = None
    result_summary: Optional[dict[str, Any]] = None
    error_logs: Optional[list[dict[str, Any]]] = None
    created_at: datetime = field(default_factory=utc_now)
    id: Optional[UUID] = None

    def to_dict(self) -> dict[str, Any]:
        return json_serializable(asdict(self))


@dataclass
class BatchQueueItem:
    """One unit of work inside a job (a marker, a content row, a metric)."""

    job_id: UUID
    item_type: str
    item_id: str
    status: QueueItemStatus = QueueItemStatus.PENDING
    processing_data: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    id: Optional[UUID] = None

    def to_dict(self) -> dict[str, Any]:
        return json_serializable(asdict(self))


@dataclass
class JobResult:
    """What a processor returns on normal completion."""

    total: int
    processed: int
    failed: int
    summary: dict[str, Any] = field(default_factory=dict)


@dataclass
class JobSpec:
    """Caller input for scheduling a job."""

    name: str
    type: BatchJobType
    schedule_type: ScheduleType = ScheduleType.IMMEDIATE
    config: dict[str, Any] = field(default_factory=dict)
    priority: int = 5
    scheduled_at: Optional[datetime] = None
    cron_expression: Optional[str] = None
    created_by: Optional[str] = None
