"""In-memory throttle store.

Notes:
- Per-process only: every worker tracks its own copy of each budget.
- Thread-safe: every operation holds one lock for its whole read-decide-write.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from quota_tracker.adapters.throttle_store.base import AbstractThrottleStore
from quota_tracker.core.restoration import ThrottleRecord, ThrottleResult, reserve
from quota_tracker.core.tiers import PlanTier


@dataclass
class _Entry:
    record: ThrottleRecord
    expires_at: float | None


class InMemoryThrottleStore(AbstractThrottleStore):
    """Throttle store backed by a dict and a lock.

    Serializability per key comes from holding the lock across the whole
    reservation; no await happens while it is held.

    Important:
        Running the API with multiple workers multiplies the effective
        budget. Use RedisThrottleStore whenever more than one process shares
        a tenant.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning UNIX time in seconds, used for expiry.
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def _get_live_locked(self, key: str) -> ThrottleRecord | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.record

    async def reserve(
        self,
        key: str,
        *,
        cost: float,
        now: float,
        default_ceiling: float,
        tier: PlanTier | None = None,
    ) -> ThrottleResult:
        with self._lock:
            record = self._get_live_locked(key)
            result, updated = reserve(
                record,
                cost=cost,
                now=now,
                default_ceiling=default_ceiling,
                tier=tier,
            )
            if updated is not None:
                # A deduction keeps the expiry set by the last synchronization.
                self._entries[key].record = updated
            return result

    async def overwrite(self, key: str, record: ThrottleRecord, *, ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds > 0 else None
        with self._lock:
            self._entries[key] = _Entry(record=record, expires_at=expires_at)

    async def load(self, key: str) -> ThrottleRecord | None:
        with self._lock:
            return self._get_live_locked(key)

    async def ping(self) -> bool:
        return True

    def clear(self) -> None:
        """Drop every record."""

        with self._lock:
            self._entries.clear()
