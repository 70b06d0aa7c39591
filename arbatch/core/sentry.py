"""Sentry initialization and configuration."""

import os
from typing import Optional

import sentry_sdk
import structlog
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from arbatch import __version__
from arbatch.config import Settings
from arbatch.jobs.errors import (
    InvalidTransitionError,
    JobCancelledError,
    JobNotFoundError,
)

logger = structlog.get_logger(__name__)

# Outcomes that are part of normal operation, not bugs
_IGNORED_ERRORS = (JobNotFoundError, InvalidTransitionError, JobCancelledError)


def _before_send(event: dict, hint: dict) -> Optional[dict]:
    """
    Drop 4xx client errors and expected job outcomes.

    Job-level processor failures are still reported; a missing job or an
    illegal status change requested over HTTP is a user error.
    """
    if "exc_info" in hint:
        exc_type, exc_value, tb = hint["exc_info"]
        if isinstance(exc_value, _IGNORED_ERRORS):
            return None
        if hasattr(exc_value, "status_code"):
            status_code = exc_value.status_code
            if isinstance(status_code, int) and 400 <= status_code < 500:
                return None

    if "contexts" in event:
        response = event.get("contexts", {}).get("response", {})
        status_code = response.get("status_code", 0)
        if 400 <= status_code < 500:
            return None

    return event


def init_sentry(settings: Settings) -> bool:
    """
    Initialize Sentry if DSN is configured.

    Returns True if Sentry was initialized, False otherwise.
    """
    if not settings.sentry_dsn:
        return False

    # Only send ERROR-level logs as Sentry events
    sentry_logging = LoggingIntegration(
        level=None,
        event_level="ERROR",
    )

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        release=os.environ.get("GIT_SHA", f"ar-batch-scheduler@{__version__}"),
        integrations=[
            sentry_logging,
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        traces_sample_rate=settings.sentry_traces_sample_rate,
        send_default_pii=False,
        attach_stacktrace=True,
        before_send=_before_send,
    )

    sentry_sdk.set_tag("service", "ar-batch-scheduler")
    sentry_sdk.set_tag("max_concurrent_jobs", settings.batch_max_concurrent_jobs)

    logger.info(
        "sentry_initialized",
        environment=settings.sentry_environment,
        traces_sample_rate=settings.sentry_traces_sample_rate,
    )
    return True
