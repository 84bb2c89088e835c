"""Factory for the configured throttle store."""

from redis.asyncio import Redis

from quota_tracker.adapters.throttle_store.base import AbstractThrottleStore
from quota_tracker.adapters.throttle_store.in_memory import InMemoryThrottleStore
from quota_tracker.adapters.throttle_store.redis_store import RedisThrottleStore
from quota_tracker.core.config import RedisSettings, ThrottleSettings, settings
from quota_tracker.core.errors import ValidationAppError


def create_throttle_store(
    throttle_settings: ThrottleSettings | None = None,
    redis_settings: RedisSettings | None = None,
) -> AbstractThrottleStore:
    """Instantiate the throttle store selected by configuration.

    The Redis client is created lazily by redis-py: no connection is
    opened until the first command, and no retry policy is added on top
    of the client's defaults.
    The returned store owns the client: close() disconnects it.

    Args:
        throttle_settings: Throttle settings; defaults to global settings.
        redis_settings: Redis settings; defaults to global settings.

    Returns:
        AbstractThrottleStore: Configured store instance.

    Raises:
        ValidationAppError: If the configured backend is unknown.
    """
    throttle_cfg = throttle_settings or settings.throttle
    redis_cfg = redis_settings or settings.redis
    backend = throttle_cfg.backend.lower()

    if backend == "memory":
        return InMemoryThrottleStore()

    if backend == "redis":
        client = Redis.from_url(
            redis_cfg.url,
            decode_responses=True,
            socket_timeout=redis_cfg.socket_timeout_seconds,
            socket_connect_timeout=redis_cfg.socket_connect_timeout_seconds,
        )
        return RedisThrottleStore(client, owns_client=True)

    raise ValidationAppError(
        code="throttle_unknown_backend",
        message=(
            f"Unknown throttle backend: '{backend}'. Supported backends: redis, memory"
        ),
    )
