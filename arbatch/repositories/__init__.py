"""Repository layer for batch job persistence."""

from arbatch.repositories.job_history import BatchJobHistoryRepository
from arbatch.repositories.jobs import BatchJobRepository
from arbatch.repositories.memory import (
    InMemoryHistoryStore,
    InMemoryJobStore,
    InMemoryQueueItemStore,
)
from arbatch.repositories.queue_items import BatchQueueItemRepository

__all__ = [
    "BatchJobRepository",
    "BatchJobHistoryRepository",
    "BatchQueueItemRepository",
    "InMemoryJobStore",
    "InMemoryHistoryStore",
    "InMemoryQueueItemStore",
]
