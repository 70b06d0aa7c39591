"""Tests for the data export processor."""

import json
from datetime import datetime, timezone

import pytest

from arbatch.jobs.errors import JobConfigurationError
from arbatch.jobs.handlers.data_export import process_data_export, to_csv
from arbatch.jobs.types import BatchJobType


class TestToCsv:
    def test_header_and_rows(self):
        text = to_csv([{"id": 1, "title": "a"}, {"id": 2, "title": "b"}])
        assert text == "id,title\n1,a\n2,b\n"

    def test_nested_values_become_json(self):
        text = to_csv([{"id": 1, "metadata": {"k": "v"}}])
        assert '"{""k"": ""v""}"' in text

    def test_empty(self):
        assert to_csv([]) == ""


class TestProcessDataExport:
    @pytest.mark.asyncio
    async def test_json_export(self, claim_job, make_context, mock_assets, mock_storage):
        created = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)
        job = await claim_job(
            BatchJobType.DATA_EXPORT,
            {
                "export_type": "ar_contents",
                "include_private": True,
                "date_from": "2026-01-01T00:00:00Z",
            },
        )
        mock_assets.export_rows.return_value = [
            {"id": "c-1", "title": "one", "created_at": created},
            {"id": "c-2", "title": "two", "created_at": created},
        ]

        result = await process_data_export(job, make_context(job))

        mock_assets.export_rows.assert_awaited_once_with(
            "ar_contents",
            include_private=True,
            date_from=datetime(2026, 1, 1, tzinfo=timezone.utc),
            date_to=None,
        )
        key, content = mock_storage.upload.await_args.args
        assert key.startswith(f"batch-exports/{job.id}/export-ar_contents-")
        assert key.endswith(".json")
        exported = json.loads(content)
        assert [row["id"] for row in exported] == ["c-1", "c-2"]
        assert exported[0]["created_at"] == created.isoformat()

        assert result.total == 2
        assert result.processed == 2
        assert result.summary["records_exported"] == 2
        assert result.summary["format"] == "json"
        assert result.summary["download_url"] == f"/exports/{key}"
        assert key.endswith(result.summary["file_name"])

    @pytest.mark.asyncio
    async def test_csv_export_defaults_to_markers(
        self, claim_job, make_context, mock_assets, mock_storage
    ):
        job = await claim_job(BatchJobType.DATA_EXPORT, {"format": "csv"})
        mock_assets.export_rows.return_value = [{"id": "m-1", "title": "poster"}]

        result = await process_data_export(job, make_context(job))

        assert mock_assets.export_rows.await_args.args == ("ar_markers",)
        _, content = mock_storage.upload.await_args.args
        assert content == "id,title\nm-1,poster\n"
        assert result.summary["export_type"] == "ar_markers"
        assert result.summary["file_name"].endswith(".csv")

    @pytest.mark.asyncio
    async def test_storage_failure_fails_job(
        self, claim_job, make_context, mock_assets, mock_storage
    ):
        job = await claim_job(BatchJobType.DATA_EXPORT)
        mock_assets.export_rows.return_value = []
        mock_storage.upload.side_effect = OSError("disk full")

        with pytest.raises(OSError):
            await process_data_export(job, make_context(job))

    @pytest.mark.asyncio
    async def test_invalid_format(self, claim_job, make_context):
        job = await claim_job(BatchJobType.DATA_EXPORT, {"format": "xlsx"})

        with pytest.raises(JobConfigurationError, match="format"):
            await process_data_export(job, make_context(job))
