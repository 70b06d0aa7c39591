"""Legal status transitions for batch jobs.

pending -> queued -> processing -> completed | failed | cancelled

A queued or pending job may be cancelled before it starts. failed -> queued
is the explicit retry performed by the HTTP layer, never by the scheduler.
"""

from typing import Optional
from uuid import UUID

from arbatch.jobs.errors import InvalidTransitionError
from arbatch.jobs.types import JobStatus

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.QUEUED, JobStatus.CANCELLED}),
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING, JobStatus.CANCELLED}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.FAILED: frozenset({JobStatus.QUEUED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def can_transition(from_status: JobStatus, to_status: JobStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS[from_status]


def sources_for(to_status: JobStatus) -> list[JobStatus]:
    """Statuses from which to_status is reachable, in lifecycle order."""
    return [s for s in JobStatus if to_status in ALLOWED_TRANSITIONS[s]]


def validate_transition(
    from_status: JobStatus, to_status: JobStatus, job_id: Optional[UUID] = None
) -> None:
    """Raise InvalidTransitionError unless from_status -> to_status is legal."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(job_id, from_status.value, to_status.value)
