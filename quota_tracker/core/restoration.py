"""Budget restoration and reservation math.

Pure functions over a throttle record. ``RedisThrottleStore`` runs the
same algorithm as a Lua script; keep the two in step.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from quota_tracker.core.tiers import PlanTier


@dataclass(frozen=True)
class ThrottleRecord:
    """Per-tenant budget as persisted in the store.

    Attributes:
        maximum_available: Bucket ceiling (> 0).
        currently_available: Remaining budget, within [0, maximum_available].
        restore_rate: Points restored per second (> 0).
        last_updated: Epoch milliseconds when currently_available was computed.
    """

    maximum_available: float
    currently_available: float
    restore_rate: float
    last_updated: float


@dataclass(frozen=True)
class ThrottleResult:
    """Outcome of a reservation check.

    Attributes:
        allowed: Whether the caller may proceed.
        remaining_points: Budget left after the deduction (0 when denied).
        max_capacity: Effective ceiling of the bucket.
        retry_after: Milliseconds to wait before retrying; set only when denied.
        restore_time_ms: Milliseconds until the bucket is completely full.
    """

    allowed: bool
    remaining_points: float
    max_capacity: float
    retry_after: int | None
    restore_time_ms: int


def effective_limits(
    maximum_available: float,
    restore_rate: float,
    tier: PlanTier | None = None,
) -> tuple[float, float]:
    """Clamp a ceiling/rate pair to the tier's contractual limits.

    Returns:
        Tuple of (effective_maximum, effective_rate).
    """

    if tier is None:
        return maximum_available, restore_rate
    return (
        min(maximum_available, tier.maximum_available),
        min(restore_rate, tier.restore_rate),
    )


def restored_available(
    record: ThrottleRecord,
    now: float,
    *,
    maximum: float,
    rate: float,
) -> float:
    """Budget available at ``now``, capped at ``maximum``.

    Time running backwards (clock skew, out-of-order callers) restores
    nothing rather than subtracting budget.
    """

    elapsed = max(now - record.last_updated, 0)
    restored = elapsed * rate / 1000
    return min(record.currently_available + restored, maximum)


def restore_time_ms(available: float, *, maximum: float, rate: float) -> int:
    """Milliseconds until the bucket is full again."""

    deficit = max(maximum - available, 0)
    return math.ceil(deficit * 1000 / rate)


def default_result(default_ceiling: float) -> ThrottleResult:
    """Result for a tenant with no record: a full, untouched bucket."""

    return ThrottleResult(
        allowed=True,
        remaining_points=default_ceiling,
        max_capacity=default_ceiling,
        retry_after=None,
        restore_time_ms=0,
    )


def reserve(
    record: ThrottleRecord | None,
    *,
    cost: float,
    now: float,
    default_ceiling: float,
    tier: PlanTier | None = None,
) -> tuple[ThrottleResult, ThrottleRecord | None]:
    """Decide a reservation against a record.

    Args:
        record: Stored record, or None when the tenant has none.
        cost: Points requested.
        now: Current time in epoch milliseconds.
        default_ceiling: Budget reported for a missing record.
        tier: Optional tier clamping the stored ceiling and rate.

    Returns:
        Tuple of (result, record_to_persist). The record is None when
        nothing must be written (missing record or denial).
    """

    if record is None:
        return default_result(default_ceiling), None

    maximum, rate = effective_limits(record.maximum_available, record.restore_rate, tier)
    available = restored_available(record, now, maximum=maximum, rate=rate)
    restore_ms = restore_time_ms(available, maximum=maximum, rate=rate)

    if available >= cost:
        remaining = available - cost
        updated = ThrottleRecord(
            maximum_available=record.maximum_available,
            currently_available=remaining,
            restore_rate=record.restore_rate,
            last_updated=now,
        )
        result = ThrottleResult(
            allowed=True,
            remaining_points=remaining,
            max_capacity=maximum,
            retry_after=None,
            restore_time_ms=restore_ms,
        )
        return result, updated

    # Denied: the record stays on its previous baseline.
    result = ThrottleResult(
        allowed=False,
        remaining_points=0,
        max_capacity=maximum,
        retry_after=restore_ms,
        restore_time_ms=restore_ms,
    )
    return result, None


def record_from_status(
    *,
    maximum_available: float,
    currently_available: float,
    restore_rate: float,
    now: float,
    tier: PlanTier | None = None,
) -> ThrottleRecord:
    """Build the record a synchronization persists.

    The reported values are authoritative, but never beyond the tier.
    """

    maximum, rate = effective_limits(maximum_available, restore_rate, tier)
    return ThrottleRecord(
        maximum_available=maximum,
        currently_available=min(currently_available, maximum),
        restore_rate=rate,
        last_updated=now,
    )
