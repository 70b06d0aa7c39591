"""StatisticsAggregation processor - rolls usage metrics up for a period."""

import calendar
from datetime import datetime, timedelta
from typing import Any

import structlog

from arbatch.jobs.errors import JobConfigurationError
from arbatch.jobs.handlers.common import choose, require_collaborator
from arbatch.jobs.items import ItemTracker
from arbatch.jobs.models import BatchJob, JobResult
from arbatch.jobs.registry import default_registry
from arbatch.jobs.types import BatchJobType
from arbatch.utils.time import utc_now

logger = structlog.get_logger(__name__)

PERIODS = ("day", "week", "month")
METRICS = ("users", "ar_contents", "ar_markers", "sessions", "batch_jobs")
METRIC_TYPE = "aggregated_statistics"

# metric name -> AssetRepository method
METRIC_QUERIES = {
    "users": "user_stats",
    "ar_contents": "content_stats",
    "ar_markers": "marker_stats",
    "sessions": "session_stats",
    "batch_jobs": "batch_job_stats",
}


def period_start(period: str, end: datetime) -> datetime:
    """Start of the aggregation window ending at ``end``."""
    if period == "day":
        return end - timedelta(days=1)
    if period == "week":
        return end - timedelta(days=7)
    # Calendar month back, clamped to the shorter month's last day
    year, month = (end.year, end.month - 1) if end.month > 1 else (end.year - 1, 12)
    day = min(end.day, calendar.monthrange(year, month)[1])
    return end.replace(year=year, month=month, day=day)


def resolve_metrics(config: dict[str, Any]) -> list[str]:
    """Expand ``all`` and drop duplicates, keeping request order.

    Unknown names are kept so they fail as items.
    """
    requested = config.get("metrics") or ["all"]
    if not isinstance(requested, list):
        raise JobConfigurationError("Config 'metrics' must be a list")

    resolved: list[str] = []
    for name in requested:
        names = METRICS if name == "all" else (str(name),)
        for metric in names:
            if metric not in resolved:
                resolved.append(metric)
    return resolved


@default_registry.processor(BatchJobType.STATISTICS_AGGREGATION)
async def process_statistics_aggregation(
    job: BatchJob, ctx: dict[str, Any]
) -> JobResult:
    """Handle a STATISTICS_AGGREGATION job.

    Each metric is one item. The collected statistics are stored as a single
    system_metrics row; failing to store it fails the job.
    """
    assets = require_collaborator(ctx, "assets")
    config = job.config

    period = choose(config, "period", PERIODS, default="day")
    metrics = resolve_metrics(config)
    end = utc_now()
    start = period_start(period, end)
    date_range = {"start": start.isoformat(), "end": end.isoformat()}

    tracker = ItemTracker(job, ctx, item_type="metric")
    await tracker.set_total(len(metrics))

    statistics: dict[str, Any] = {}
    for metric in metrics:

        async def aggregate(metric=metric) -> dict[str, Any]:
            if metric not in METRIC_QUERIES:
                raise ValueError(f"Unknown metric: {metric}")
            statistics[metric] = await getattr(assets, METRIC_QUERIES[metric])(start)
            return {"metric": metric}

        await tracker.run_item(metric, aggregate)

    await assets.insert_system_metric(
        METRIC_TYPE,
        tracker.processed,
        {"period": period, "date_range": date_range, "statistics": statistics},
    )

    return tracker.result(
        {
            "period": period,
            "date_range": date_range,
            "aggregated_metrics": list(statistics),
            "statistics": statistics,
        }
    )
