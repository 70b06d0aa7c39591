"""API routers."""

from arbatch.routers import batch_jobs, health, metrics

__all__ = ["batch_jobs", "health", "metrics"]
