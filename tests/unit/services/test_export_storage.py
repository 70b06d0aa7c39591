"""Tests for local export storage."""

import pytest

from arbatch.services.storage import ExportStorageError, LocalExportStorage


class TestLocalExportStorage:
    @pytest.mark.asyncio
    async def test_upload_writes_file(self, tmp_path):
        storage = LocalExportStorage(tmp_path)

        path = await storage.upload("batch-exports/job-1/export.json", "[]")

        assert (tmp_path / "batch-exports" / "job-1" / "export.json").read_text() == "[]"
        assert path.endswith("export.json")

    @pytest.mark.asyncio
    async def test_rejects_escaping_key(self, tmp_path):
        storage = LocalExportStorage(tmp_path / "exports")

        with pytest.raises(ExportStorageError):
            await storage.upload("../outside.json", "{}")

    def test_public_url(self, tmp_path):
        storage = LocalExportStorage(tmp_path, public_base_url="https://cdn.test/exports/")
        assert storage.public_url("a/b.csv") == "https://cdn.test/exports/a/b.csv"
