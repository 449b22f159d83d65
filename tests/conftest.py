"""Pytest configuration and fixtures for doccache tests."""

import logging
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from doccache.cache import DistributedCache
from doccache.store.memory import MemoryDocumentStore


@pytest.fixture(autouse=True, scope="session")
def mock_environment_variables():
    """Pin configuration so tests never touch a developer's .env or cache file."""
    env_vars = {
        "DOCCACHE_STORE_URL": "memory://",
        "DOCCACHE_COLLECTION": "Sessions",
        "DOCCACHE_GC_PAGE_SIZE": "40",
        "LOG_LEVEL": "ERROR",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        yield


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def cache(store, clock):
    return DistributedCache(store, clock=clock)


# Disable logging to reduce noise during tests
logging.getLogger().setLevel(logging.ERROR)
