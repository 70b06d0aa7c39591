"""Tests for configuration."""

import pytest
from pydantic import ValidationError

from arbatch.config import Settings


class TestSettings:
    def test_batch_defaults(self, monkeypatch):
        for name in (
            "BATCH_MAX_CONCURRENT_JOBS",
            "BATCH_POLL_INTERVAL_S",
            "BATCH_JOB_TIMEOUT_S",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.batch_max_concurrent_jobs == 3
        assert settings.batch_poll_interval_s == 60.0
        assert settings.batch_poll_enabled is True
        assert settings.job_timeout == 3600.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("BATCH_MAX_CONCURRENT_JOBS", "8")
        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/ar")

        settings = Settings(_env_file=None)

        assert settings.batch_max_concurrent_jobs == 8
        assert settings.database_url == "postgresql://localhost/ar"

    def test_zero_timeout_disables(self):
        settings = Settings(_env_file=None, batch_job_timeout_s=0)
        assert settings.job_timeout is None

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, batch_max_concurrent_jobs=0)

    def test_rejects_bad_sample_rate(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, sentry_traces_sample_rate=1.5)
