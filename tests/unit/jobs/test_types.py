"""Tests for batch job types."""

from arbatch.jobs.types import (
    BatchJobType,
    JobStatus,
    ScheduleType,
    job_type_value,
    parse_job_type,
)


class TestBatchJobType:
    def test_all_job_types(self):
        assert {t.value for t in BatchJobType} == {
            "marker_optimization",
            "mindar_generation",
            "content_update",
            "data_export",
            "statistics_aggregation",
        }

    def test_is_string_enum(self):
        assert BatchJobType("data_export") == BatchJobType.DATA_EXPORT
        assert BatchJobType.DATA_EXPORT == "data_export"

    def test_parse_known_type(self):
        assert parse_job_type("content_update") is BatchJobType.CONTENT_UPDATE

    def test_parse_unknown_type_keeps_string(self):
        parsed = parse_job_type("video_transcode")
        assert parsed == "video_transcode"
        assert not isinstance(parsed, BatchJobType)

    def test_job_type_value(self):
        assert job_type_value(BatchJobType.DATA_EXPORT) == "data_export"
        assert job_type_value("video_transcode") == "video_transcode"


class TestJobStatus:
    def test_terminal_statuses(self):
        assert JobStatus.COMPLETED.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert JobStatus.CANCELLED.is_terminal

    def test_non_terminal_statuses(self):
        assert not JobStatus.PENDING.is_terminal
        assert not JobStatus.QUEUED.is_terminal
        assert not JobStatus.PROCESSING.is_terminal


class TestScheduleType:
    def test_values(self):
        assert [s.value for s in ScheduleType] == ["immediate", "scheduled", "recurring"]
