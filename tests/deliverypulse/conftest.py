"""Shared fixtures for deliverypulse tests. No network access is needed."""

from datetime import datetime, timezone

import pytest

from deliverypulse.engines.collector.models import CollectionWindow, RepoConfig


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def window():
    return CollectionWindow(
        start=datetime(2024, 1, 1, tzinfo=timezone.utc),
        end=datetime(2024, 2, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def repo():
    return RepoConfig(owner="acme", name="widgets")
