"""Tests for the statistics aggregation processor."""

from datetime import datetime, timezone

import pytest

from arbatch.jobs.errors import JobConfigurationError
from arbatch.jobs.handlers.statistics_aggregation import (
    METRICS,
    period_start,
    process_statistics_aggregation,
    resolve_metrics,
)
from arbatch.jobs.types import BatchJobType


class TestPeriodStart:
    def test_day(self):
        end = datetime(2026, 3, 10, 12, tzinfo=timezone.utc)
        assert period_start("day", end) == datetime(2026, 3, 9, 12, tzinfo=timezone.utc)

    def test_week(self):
        end = datetime(2026, 3, 10, tzinfo=timezone.utc)
        assert period_start("week", end) == datetime(2026, 3, 3, tzinfo=timezone.utc)

    def test_month_clamps_day(self):
        end = datetime(2026, 3, 31, tzinfo=timezone.utc)
        assert period_start("month", end) == datetime(2026, 2, 28, tzinfo=timezone.utc)

    def test_month_crosses_year(self):
        end = datetime(2026, 1, 15, tzinfo=timezone.utc)
        assert period_start("month", end) == datetime(2025, 12, 15, tzinfo=timezone.utc)


class TestResolveMetrics:
    def test_defaults_to_all(self):
        assert resolve_metrics({}) == list(METRICS)

    def test_deduplicates_in_order(self):
        assert resolve_metrics({"metrics": ["sessions", "users", "sessions"]}) == [
            "sessions",
            "users",
        ]

    def test_all_with_extra(self):
        assert resolve_metrics({"metrics": ["users", "all"]}) == list(METRICS)

    def test_not_a_list(self):
        with pytest.raises(JobConfigurationError):
            resolve_metrics({"metrics": "users"})


class TestProcessStatisticsAggregation:
    @pytest.mark.asyncio
    async def test_aggregates_requested_metrics(self, claim_job, make_context, mock_assets):
        job = await claim_job(
            BatchJobType.STATISTICS_AGGREGATION,
            {"period": "week", "metrics": ["users", "sessions", "bogus"]},
        )
        mock_assets.user_stats.return_value = {"new_users": 4, "by_role": {"user": 4}}
        mock_assets.session_stats.return_value = {
            "total_sessions": 10,
            "success_rate": 0.8,
            "avg_detection_time": 120.0,
        }

        result = await process_statistics_aggregation(job, make_context(job))

        assert result.total == 3
        assert result.processed == 2
        assert result.failed == 1
        assert result.summary["period"] == "week"
        assert result.summary["aggregated_metrics"] == ["users", "sessions"]
        assert result.summary["statistics"]["users"]["new_users"] == 4
        assert result.summary["errors"] == [
            {"item_id": "bogus", "error": "Unknown metric: bogus"}
        ]

        mock_assets.insert_system_metric.assert_awaited_once()
        metric_type, value, metadata = mock_assets.insert_system_metric.await_args.args
        assert metric_type == "aggregated_statistics"
        assert value == 2
        assert metadata["period"] == "week"
        assert set(metadata["date_range"]) == {"start", "end"}

    @pytest.mark.asyncio
    async def test_invalid_period(self, claim_job, make_context):
        job = await claim_job(BatchJobType.STATISTICS_AGGREGATION, {"period": "year"})

        with pytest.raises(JobConfigurationError, match="period"):
            await process_statistics_aggregation(job, make_context(job))

    @pytest.mark.asyncio
    async def test_metric_store_failure_fails_job(
        self, claim_job, make_context, mock_assets
    ):
        job = await claim_job(BatchJobType.STATISTICS_AGGREGATION, {"metrics": ["users"]})
        mock_assets.user_stats.return_value = {"new_users": 0, "by_role": {}}
        mock_assets.insert_system_metric.side_effect = ConnectionError("db gone")

        with pytest.raises(ConnectionError):
            await process_statistics_aggregation(job, make_context(job))
