"""Batch processors package.

Each module registers one processor with the default_registry.

Usage:
    # Import the package to register every built-in processor
    import arbatch.jobs.handlers  # noqa: F401

Processor contract:
    async def process_<job_type>(job: BatchJob, ctx: dict) -> JobResult:
        - job: The claimed BatchJob, including its config
        - ctx: job_repo, items_repo, cancellation token and the collaborators
          (assets, media, storage) the processor needs
        - Resolves the working set, writes total_items, runs each item through
          an ItemTracker and returns its result
        - Raises only for job-level fatal conditions
"""

# Import processors to trigger registration
from arbatch.jobs.handlers import content_update  # noqa: F401
from arbatch.jobs.handlers import data_export  # noqa: F401
from arbatch.jobs.handlers import marker_optimization  # noqa: F401
from arbatch.jobs.handlers import mindar_generation  # noqa: F401
from arbatch.jobs.handlers import statistics_aggregation  # noqa: F401

__all__ = [
    "content_update",
    "data_export",
    "marker_optimization",
    "mindar_generation",
    "statistics_aggregation",
]
