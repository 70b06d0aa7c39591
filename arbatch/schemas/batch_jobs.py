"""Batch job API schemas."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from arbatch.jobs.models import JobSpec
from arbatch.jobs.types import BatchJobType, ScheduleType


class CreateBatchJobRequest(BaseModel):
    """Body of POST /batch-jobs."""

    name: str = Field(..., min_length=1, max_length=255)
    type: BatchJobType
    schedule_type: ScheduleType = ScheduleType.IMMEDIATE
    scheduled_at: Optional[datetime] = Field(
        None, description="Required when schedule_type is 'scheduled'"
    )
    cron_expression: Optional[str] = Field(None, max_length=255)
    config: dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(5, ge=1, le=10, description="Higher runs first")
    created_by: Optional[str] = None

    @model_validator(mode="after")
    def check_schedule(self) -> "CreateBatchJobRequest":
        if self.schedule_type == ScheduleType.SCHEDULED:
            if self.scheduled_at is None:
                raise ValueError("scheduled_at is required for scheduled jobs")
            if self.scheduled_at.tzinfo is None:
                raise ValueError("scheduled_at must include a timezone offset")
        return self

    def to_spec(self) -> JobSpec:
        return JobSpec(
            name=self.name,
            type=self.type,
            schedule_type=self.schedule_type,
            config=self.config,
            priority=self.priority,
            scheduled_at=self.scheduled_at,
            cron_expression=self.cron_expression,
            created_by=self.created_by,
        )


class JobActionRequest(BaseModel):
    """Body of PUT /batch-jobs/{id}."""

    action: Literal["cancel", "retry"]


class JobProgressResponse(BaseModel):
    job_id: str
    progress: int = Field(..., ge=0, le=100)


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    version: str
    store: str
    store_error: Optional[str] = None
    in_flight: int
    max_concurrent_jobs: int
    poller_running: bool
    poller_last_run_at: Optional[datetime] = None
