"""Throttle store adapters.

The tracker talks to an abstract store so the same reservation protocol
runs against Redis in production and against a process-local store in
tests and single-worker deployments.
"""

from quota_tracker.adapters.throttle_store.base import AbstractThrottleStore
from quota_tracker.adapters.throttle_store.factory import create_throttle_store
from quota_tracker.adapters.throttle_store.in_memory import InMemoryThrottleStore
from quota_tracker.adapters.throttle_store.redis_store import RedisThrottleStore

__all__ = [
    "AbstractThrottleStore",
    "InMemoryThrottleStore",
    "RedisThrottleStore",
    "create_throttle_store",
]
