"""Tests for the health and metrics endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from arbatch.core.middleware import setup_middleware
from arbatch.routers import batch_jobs, health, metrics


@pytest.fixture
def client():
    app = FastAPI()
    setup_middleware(app)
    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(batch_jobs.router)
    yield TestClient(app)
    batch_jobs.set_scheduler(None)


@pytest.fixture
def scheduler():
    mock = MagicMock()
    mock.job_repo.ping = AsyncMock(return_value=True)
    mock.dispatcher.in_flight_count = 2
    mock.dispatcher.max_concurrent_jobs = 3
    mock.poller.is_running = True
    mock.poller.last_run_at = None
    return mock


class TestHealth:
    def test_degraded_without_scheduler(self, client):
        batch_jobs.set_scheduler(None)

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["store"] == "unavailable"

    def test_ok(self, client, scheduler):
        batch_jobs.set_scheduler(scheduler)

        response = client.get("/health")

        body = response.json()
        assert body["status"] == "ok"
        assert body["in_flight"] == 2
        assert body["max_concurrent_jobs"] == 3
        assert body["poller_running"] is True
        assert "X-Request-ID" in response.headers

    def test_store_unreachable(self, client, scheduler):
        scheduler.job_repo.ping.side_effect = ConnectionError("refused")
        batch_jobs.set_scheduler(scheduler)

        body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert body["store"] == "error"
        assert body["store_error"] == "refused"


class TestStoreUnavailable:
    def test_connection_error_maps_to_503(self, client, scheduler):
        scheduler.get_scheduled_jobs = AsyncMock(side_effect=ConnectionError("refused"))
        batch_jobs.set_scheduler(scheduler)

        response = client.get("/batch-jobs/scheduled")

        assert response.status_code == 503
        assert response.json()["retryable"] is True


class TestMetrics:
    def test_exposes_scheduler_metrics(self, client):
        # Importing the dispatcher registers its collectors
        import arbatch.jobs.dispatcher  # noqa: F401

        client.get("/health")
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "batch_jobs_claimed_total" in response.text
        assert "arbatch_requests_total" in response.text
