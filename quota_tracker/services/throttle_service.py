"""Quota tracker service: the caller-facing check/sync protocol.

Callers sharing one backing store coordinate through it alone. The
tracker validates input, resolves plan tiers, builds record keys and
delegates every read-decide-write to the store's atomic primitive. It
holds no per-tenant state between calls.

Typical flow around a call to the protected API:
- ``check()`` before the call reserves the estimated cost.
- ``sync()`` after the call replaces the estimate with the throttle status
  the API reported.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from quota_tracker.adapters.throttle_store.base import AbstractThrottleStore
from quota_tracker.core.config import ThrottleSettings, settings
from quota_tracker.core.errors import InvalidArgument, InvalidRecord
from quota_tracker.core.restoration import (
    ThrottleRecord,
    ThrottleResult,
    record_from_status,
)
from quota_tracker.core.tiers import PLAN_TIERS, Plan, PlanTier, resolve_tier
from quota_tracker.schemas.throttle import ThrottleStatus

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class QuotaTracker:
    """Estimates and enforces a remote API's budget per tenant.

    Attributes:
        store: Store executing the atomic reservation/overwrite primitives.
    """

    def __init__(
        self,
        store: AbstractThrottleStore,
        *,
        key_prefix: str = "throttle",
        default_ceiling: float = 1000.0,
        default_cost: float = 10.0,
        record_ttl_seconds: int = 86400,
        tiers: Mapping[Plan, PlanTier] = PLAN_TIERS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the tracker.

        Args:
            store: Backing store shared with every other caller.
            key_prefix: Namespace for record keys.
            default_ceiling: Budget reported for tenants without a record.
            default_cost: Cost reserved when check() is called without one.
            record_ttl_seconds: Expiry applied on sync (0 disables expiry).
            tiers: Plan tier table.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If a limit is out of range.
        """
        if default_ceiling <= 0:
            raise ValueError("default_ceiling must be > 0")
        if default_cost < 0:
            raise ValueError("default_cost must be >= 0")
        if record_ttl_seconds < 0:
            raise ValueError("record_ttl_seconds must be >= 0")

        self.store = store
        self._key_prefix = key_prefix
        self._default_ceiling = default_ceiling
        self._default_cost = default_cost
        self._record_ttl_seconds = record_ttl_seconds
        self._tiers = tiers
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        store: AbstractThrottleStore,
        throttle_settings: ThrottleSettings | None = None,
    ) -> "QuotaTracker":
        """Build a tracker from ThrottleSettings (global settings by default)."""

        cfg = throttle_settings or settings.throttle
        return cls(
            store,
            key_prefix=cfg.key_prefix,
            default_ceiling=cfg.default_ceiling,
            default_cost=cfg.default_cost,
            record_ttl_seconds=cfg.record_ttl_seconds,
        )

    def record_key(self, tenant_key: str) -> str:
        """Return the store key holding a tenant's record."""

        return f"{self._key_prefix}:{tenant_key}"

    def _now_ms(self) -> float:
        return float(int(self._clock() * 1000))

    def _validate_tenant(self, tenant_key: str) -> None:
        if not isinstance(tenant_key, str) or not tenant_key.strip():
            raise InvalidArgument(
                "tenant_key must be a non-empty string",
                details={"field": "tenant_key"},
            )

    def _resolve_now(self, now: float | None) -> float:
        if now is None:
            return self._now_ms()
        if not _is_number(now) or not math.isfinite(now):
            raise InvalidArgument(
                "now must be a finite timestamp in epoch milliseconds",
                details={"field": "now", "value": str(now)},
            )
        return float(now)

    def _resolve_cost(self, cost: float | None) -> float:
        if cost is None:
            return self._default_cost
        if not _is_number(cost) or not math.isfinite(cost) or cost < 0:
            raise InvalidArgument(
                "cost must be a finite number >= 0",
                details={"field": "cost", "value": str(cost)},
            )
        return float(cost)

    def _resolve_tier(self, tier: Plan | str | None) -> PlanTier | None:
        return resolve_tier(tier, self._tiers)

    def _coerce_status(
        self,
        status: ThrottleStatus | Mapping[str, Any],
    ) -> ThrottleStatus:
        if isinstance(status, ThrottleStatus):
            return status
        try:
            return ThrottleStatus.model_validate(status)
        except ValidationError as exc:
            raise InvalidRecord(
                "Throttle status is malformed",
                details={"hint": str(exc)},
            ) from exc

    def _validate_status(self, status: ThrottleStatus) -> None:
        """Reject statuses that cannot become a valid record.

        Raises:
            InvalidRecord: If the ceiling or rate is not positive, the
                available budget is negative, or any value is not finite.
        """
        values = {
            "maximum_available": status.maximum_available,
            "currently_available": status.currently_available,
            "restore_rate": status.restore_rate,
        }
        for field, value in values.items():
            if not math.isfinite(value):
                raise InvalidRecord(
                    f"{field} must be finite",
                    details={"field": field, "value": str(value)},
                )

        if status.maximum_available <= 0:
            raise InvalidRecord(
                "maximum_available must be > 0",
                details={"field": "maximum_available", "value": status.maximum_available},
            )
        if status.restore_rate <= 0:
            raise InvalidRecord(
                "restore_rate must be > 0",
                details={"field": "restore_rate", "value": status.restore_rate},
            )
        if status.currently_available < 0:
            raise InvalidRecord(
                "currently_available must be >= 0",
                details={"field": "currently_available", "value": status.currently_available},
            )

    async def check(
        self,
        tenant_key: str,
        cost: float | None = None,
        now: float | None = None,
        *,
        tier: Plan | str | None = None,
    ) -> ThrottleResult:
        """Reserve ``cost`` points from the tenant's budget if available.

        Restoration, decision and deduction happen in one atomic store
        operation. An allowed reservation is committed even if the caller
        never reads the result.

        Args:
            tenant_key: Tenant whose budget is charged.
            cost: Points to reserve; defaults to the configured default cost.
            now: Current time in epoch milliseconds; defaults to the clock.
            tier: Optional plan clamping the stored ceiling and rate.

        Returns:
            ThrottleResult with the decision and timing hints.

        Raises:
            InvalidArgument: On an empty tenant, bad cost/now or unknown tier.
            BackendUnavailable: If the store cannot be reached.
        """
        self._validate_tenant(tenant_key)
        cost_value = self._resolve_cost(cost)
        now_ms = self._resolve_now(now)
        plan_tier = self._resolve_tier(tier)

        default_ceiling = self._default_ceiling
        if plan_tier is not None:
            default_ceiling = min(default_ceiling, plan_tier.maximum_available)

        result = await self.store.reserve(
            self.record_key(tenant_key),
            cost=cost_value,
            now=now_ms,
            default_ceiling=default_ceiling,
            tier=plan_tier,
        )

        if result.allowed:
            logger.info(
                "throttle.allowed",
                extra={
                    "tenant_key": tenant_key,
                    "cost": cost_value,
                    "remaining": result.remaining_points,
                    "limit": result.max_capacity,
                    "restore_time_ms": result.restore_time_ms,
                },
            )
        else:
            logger.warning(
                "throttle.denied",
                extra={
                    "tenant_key": tenant_key,
                    "cost": cost_value,
                    "limit": result.max_capacity,
                    "retry_after_ms": result.retry_after,
                },
            )
        return result

    async def sync(
        self,
        tenant_key: str,
        status: ThrottleStatus | Mapping[str, Any],
        now: float | None = None,
        *,
        tier: Plan | str | None = None,
    ) -> None:
        """Overwrite the tenant's record with an authoritative status.

        Optimistic deductions made by check() since the last sync are
        discarded in favour of the reported values.

        Args:
            tenant_key: Tenant whose record is replaced.
            status: Throttle status as reported by the protected API.
            now: Time of the report in epoch milliseconds; defaults to the clock.
            tier: Optional plan clamping the reported ceiling and rate.

        Raises:
            InvalidArgument: On an empty tenant, bad now or unknown tier.
            InvalidRecord: If the status cannot form a valid record.
            BackendUnavailable: If the store cannot be reached.
        """
        self._validate_tenant(tenant_key)
        now_ms = self._resolve_now(now)
        plan_tier = self._resolve_tier(tier)
        reported = self._coerce_status(status)
        self._validate_status(reported)

        record = record_from_status(
            maximum_available=reported.maximum_available,
            currently_available=reported.currently_available,
            restore_rate=reported.restore_rate,
            now=now_ms,
            tier=plan_tier,
        )
        await self.store.overwrite(
            self.record_key(tenant_key),
            record,
            ttl_seconds=self._record_ttl_seconds,
        )

        logger.info(
            "throttle.synced",
            extra={
                "tenant_key": tenant_key,
                "limit": record.maximum_available,
                "available": record.currently_available,
                "restore_rate": record.restore_rate,
                "clamped": record.maximum_available != reported.maximum_available
                or record.restore_rate != reported.restore_rate,
            },
        )

    async def get_record(self, tenant_key: str) -> ThrottleRecord | None:
        """Return the tenant's stored record without restoring or writing."""

        self._validate_tenant(tenant_key)
        return await self.store.load(self.record_key(tenant_key))

    async def ping(self) -> bool:
        """Return True when the backing store is reachable."""

        return await self.store.ping()
