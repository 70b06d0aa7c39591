"""Root conftest for test suite.

Auto-skips slow tests unless requested with: pytest -m slow
"""

import pytest

from arbatch.repositories.memory import (
    InMemoryHistoryStore,
    InMemoryJobStore,
    InMemoryQueueItemStore,
)


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless explicitly requested via -m."""
    markexpr = config.getoption("-m", default="")
    if "slow" in markexpr:
        return

    skip_slow = pytest.mark.skip(
        reason="slow tests skipped by default. Run with: pytest -m slow"
    )
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def history_store():
    return InMemoryHistoryStore()


@pytest.fixture
def item_store():
    return InMemoryQueueItemStore()
