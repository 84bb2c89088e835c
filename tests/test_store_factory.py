"""Tests for the configured store factory."""

import pytest

from quota_tracker.adapters.throttle_store import (
    InMemoryThrottleStore,
    RedisThrottleStore,
    create_throttle_store,
)
from quota_tracker.core.config import RedisSettings, ThrottleSettings
from quota_tracker.core.errors import ValidationAppError


def test_memory_backend() -> None:
    store = create_throttle_store(ThrottleSettings(backend="memory"))

    assert isinstance(store, InMemoryThrottleStore)


def test_redis_backend_does_not_connect_eagerly() -> None:
    store = create_throttle_store(
        ThrottleSettings(backend="redis"),
        RedisSettings(url="redis://unreachable.invalid:6379/0"),
    )

    assert isinstance(store, RedisThrottleStore)


def test_unknown_backend_is_rejected() -> None:
    cfg = ThrottleSettings(backend="memory")
    cfg.backend = "memcached"

    with pytest.raises(ValidationAppError) as exc_info:
        create_throttle_store(cfg)

    assert exc_info.value.code == "throttle_unknown_backend"


@pytest.mark.asyncio
async def test_redis_store_owns_its_client() -> None:
    store = create_throttle_store(ThrottleSettings(backend="redis"))

    await store.close()

    assert store._owns_client is True
