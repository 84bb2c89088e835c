"""Throttle store interfaces.

The tracker depends on this abstraction, not on a concrete store. A store
must execute each reservation and each overwrite as one serializable step
per key: no other operation on the same key may be observed interleaved.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from quota_tracker.core.restoration import ThrottleRecord, ThrottleResult
from quota_tracker.core.tiers import PlanTier


class AbstractThrottleStore(ABC):
    """Interface for stores that own throttle records."""

    @abstractmethod
    async def reserve(
        self,
        key: str,
        *,
        cost: float,
        now: float,
        default_ceiling: float,
        tier: PlanTier | None = None,
    ) -> ThrottleResult:
        """Restore, decide and (if allowed) deduct in one atomic step.

        Args:
            key: Fully-qualified record key.
            cost: Points to reserve.
            now: Current time in epoch milliseconds.
            default_ceiling: Budget reported when no record exists.
            tier: Optional tier clamping the stored ceiling and rate.

        Returns:
            ThrottleResult describing the decision.

        Raises:
            BackendUnavailable: If the store cannot execute the operation.
        """
        raise NotImplementedError

    @abstractmethod
    async def overwrite(self, key: str, record: ThrottleRecord, *, ttl_seconds: int) -> None:
        """Replace the record atomically and (re)apply its expiry.

        Args:
            key: Fully-qualified record key.
            record: Already clamped and validated record.
            ttl_seconds: Expiry in seconds; 0 keeps the record indefinitely.

        Raises:
            BackendUnavailable: If the store cannot execute the operation.
        """
        raise NotImplementedError

    @abstractmethod
    async def load(self, key: str) -> ThrottleRecord | None:
        """Read the stored record as-is, without restoration or writes."""
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store is reachable."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release connections held by the store. Records are not touched."""
        return None
