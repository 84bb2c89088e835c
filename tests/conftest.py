"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before anything imports the settings
module, so tests never need a .env file or a running Redis.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("THROTTLE_BACKEND", "memory")
os.environ.setdefault("LOG_FORMAT", "plain")

from unittest.mock import Mock

import fakeredis
import pytest
import pytest_asyncio

from quota_tracker.adapters.throttle_store.in_memory import InMemoryThrottleStore
from quota_tracker.adapters.throttle_store.redis_store import RedisThrottleStore
from quota_tracker.services.throttle_service import QuotaTracker

# Fixed epoch milliseconds used as "t0" across tests
T0 = 1_700_000_000_000


@pytest_asyncio.fixture
async def redis_client():
    """Isolated in-process Redis with Lua scripting."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture(params=["memory", "redis"])
async def store(request):
    """Every store implementation, so behaviour tests run against both."""
    if request.param == "memory":
        yield InMemoryThrottleStore()
        return

    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield RedisThrottleStore(client)
    await client.aclose()


@pytest.fixture
def clock() -> Mock:
    """Clock in UNIX seconds pinned to T0."""
    return Mock(return_value=T0 / 1000)


@pytest.fixture
def tracker(store, clock: Mock) -> QuotaTracker:
    return QuotaTracker(store, clock=clock)
