"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service Configuration
    service_host: str = Field(default="0.0.0.0", description="Service host")
    service_port: int = Field(default=8000, description="Service port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Database Configuration
    database_url: Optional[str] = Field(
        default=None,
        description="PostgreSQL connection URL. In-memory stores are used when unset",
    )
    db_pool_min_size: int = Field(default=1, description="Minimum connection pool size")
    db_pool_max_size: int = Field(default=10, description="Maximum connection pool size")

    # Batch Scheduler
    batch_max_concurrent_jobs: int = Field(
        default=3,
        ge=1,
        le=64,
        description="Maximum number of jobs processed at once by this instance",
    )
    batch_poll_enabled: bool = Field(
        default=True,
        description="Start the scheduled-job poll loop at startup",
    )
    batch_poll_interval_s: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between scheduled-job poll ticks",
    )
    batch_job_timeout_s: float = Field(
        default=3600.0,
        ge=0,
        description="Hard execution timeout per job in seconds (0 disables)",
    )
    batch_error_summary_limit: int = Field(
        default=10,
        ge=0,
        description="Number of item errors kept in a job's result summary",
    )
    batch_shutdown_timeout_s: float = Field(
        default=30.0,
        ge=0,
        description="Seconds to wait for in-flight jobs on shutdown",
    )
    worker_id: Optional[str] = Field(
        default=None,
        description="Claim owner identifier (defaults to hostname:pid)",
    )

    # Media processing service (marker optimization, tracking compilation)
    media_service_url: str = Field(
        default="http://localhost:8088",
        description="Base URL of the media processing service",
    )
    media_service_timeout: int = Field(
        default=120, description="Media service request timeout in seconds"
    )

    # Data export
    export_dir: str = Field(
        default="./data/exports",
        description="Root directory for data export files",
    )

    # Sentry Observability
    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )
    sentry_environment: str = Field(
        default="development",
        description="Sentry environment tag (development, staging, production)",
    )
    sentry_traces_sample_rate: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry performance tracing sample rate (0.0-1.0)",
    )

    @property
    def job_timeout(self) -> Optional[float]:
        """Executor timeout in seconds, or None when disabled."""
        return self.batch_job_timeout_s or None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
