"""Redis throttle store.

Each operation is a single Lua script, so Redis runs the whole
read-decide-write without interleaving other commands on the key. Scripts
are registered once and invoked via EVALSHA (redis-py reloads them on
NOSCRIPT).

Records are hashes with the fields ``maximumAvailable``,
``currentlyAvailable``, ``restoreRate`` and ``lastUpdated``. Numbers cross
the Lua boundary as strings: Redis truncates Lua numbers to integers in
replies, and the scripts format them with 17 significant digits so they
round-trip to the same double as on the Python side.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from quota_tracker.adapters.throttle_store.base import AbstractThrottleStore
from quota_tracker.core.errors import BackendUnavailable
from quota_tracker.core.restoration import ThrottleRecord, ThrottleResult
from quota_tracker.core.tiers import PlanTier

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RECORD_FIELDS = ("maximumAvailable", "currentlyAvailable", "restoreRate", "lastUpdated")

# Mirrors quota_tracker.core.restoration.reserve().
# KEYS[1] = record key
# ARGV = now_ms, cost, default_ceiling, tier_max ("" = none), tier_rate ("" = none)
# Returns {allowed, remaining, max_capacity, retry_after ("" = none), restore_time_ms}
_RESERVE_LUA = """
local function num(x)
    return string.format("%.17g", x)
end

local key = KEYS[1]
local now = tonumber(ARGV[1])
local cost = tonumber(ARGV[2])
local tierMax = tonumber(ARGV[4])
local tierRate = tonumber(ARGV[5])

if redis.call("EXISTS", key) == 0 then
    return {1, ARGV[3], ARGV[3], "", "0"}
end

local data = redis.call("HMGET", key,
    "maximumAvailable",
    "currentlyAvailable",
    "restoreRate",
    "lastUpdated")

local maximum = tonumber(data[1])
local current = tonumber(data[2])
local rate = tonumber(data[3])
local lastUpdated = tonumber(data[4])

if not (maximum and current and rate and lastUpdated) then
    return {1, ARGV[3], ARGV[3], "", "0"}
end

if tierMax and tierMax < maximum then
    maximum = tierMax
end
if tierRate and tierRate < rate then
    rate = tierRate
end

local elapsed = math.max(now - lastUpdated, 0)
local available = math.min(current + elapsed * rate / 1000, maximum)
local restoreTimeMs = math.ceil(math.max(maximum - available, 0) * 1000 / rate)

if available >= cost then
    local remaining = available - cost
    redis.call("HSET", key,
        "currentlyAvailable", num(remaining),
        "lastUpdated", ARGV[1])
    return {1, num(remaining), num(maximum), "", num(restoreTimeMs)}
end

return {0, "0", num(maximum), num(restoreTimeMs), num(restoreTimeMs)}
"""

# KEYS[1] = record key
# ARGV = maximum, current, rate, last_updated, ttl_seconds (0 = no expiry)
_OVERWRITE_LUA = """
local key = KEYS[1]
redis.call("HSET", key,
    "maximumAvailable", ARGV[1],
    "currentlyAvailable", ARGV[2],
    "restoreRate", ARGV[3],
    "lastUpdated", ARGV[4])

local ttl = tonumber(ARGV[5])
if ttl > 0 then
    redis.call("EXPIRE", key, ttl)
else
    redis.call("PERSIST", key)
end
return 1
"""


def _fmt(value: float) -> str:
    return repr(float(value))


def _to_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


def _to_float(value: Any) -> float:
    return float(_to_text(value))


def _to_optional_ms(value: Any) -> int | None:
    text = _to_text(value) if value is not None else ""
    if text == "":
        return None
    return int(float(text))


class RedisThrottleStore(AbstractThrottleStore):
    """Throttle store shared by every process connected to one Redis."""

    def __init__(self, client: Redis, *, owns_client: bool = False) -> None:
        """Initialize the store and register its scripts.

        Args:
            client: Async Redis client.
            owns_client: Close the client in close(). Leave False when the
                caller manages the client's lifecycle.
        """
        self._client = client
        self._owns_client = owns_client
        self._reserve_script = client.register_script(_RESERVE_LUA)
        self._overwrite_script = client.register_script(_OVERWRITE_LUA)

    async def _guard(self, operation: str, key: str | None, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except RedisError as exc:
            logger.error(
                "throttle.store_error",
                extra={
                    "operation": operation,
                    "record_key": key,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            raise BackendUnavailable(
                f"Throttle store unavailable: {exc}",
                details={"backend": "redis", "error_type": type(exc).__name__},
            ) from exc

    async def reserve(
        self,
        key: str,
        *,
        cost: float,
        now: float,
        default_ceiling: float,
        tier: PlanTier | None = None,
    ) -> ThrottleResult:
        args = [
            _fmt(now),
            _fmt(cost),
            _fmt(default_ceiling),
            _fmt(tier.maximum_available) if tier else "",
            _fmt(tier.restore_rate) if tier else "",
        ]
        reply = await self._guard(
            "reserve",
            key,
            lambda: self._reserve_script(keys=[key], args=args),
        )

        allowed, remaining, maximum, retry_after, restore_ms = reply
        return ThrottleResult(
            allowed=int(allowed) == 1,
            remaining_points=_to_float(remaining),
            max_capacity=_to_float(maximum),
            retry_after=_to_optional_ms(retry_after),
            restore_time_ms=int(_to_float(restore_ms)),
        )

    async def overwrite(self, key: str, record: ThrottleRecord, *, ttl_seconds: int) -> None:
        args = [
            _fmt(record.maximum_available),
            _fmt(record.currently_available),
            _fmt(record.restore_rate),
            _fmt(record.last_updated),
            str(int(ttl_seconds)),
        ]
        await self._guard(
            "overwrite",
            key,
            lambda: self._overwrite_script(keys=[key], args=args),
        )

    async def load(self, key: str) -> ThrottleRecord | None:
        values = await self._guard(
            "load",
            key,
            lambda: self._client.hmget(key, list(_RECORD_FIELDS)),
        )
        if any(value is None for value in values):
            return None

        maximum, current, rate, last_updated = (_to_float(value) for value in values)
        return ThrottleRecord(
            maximum_available=maximum,
            currently_available=current,
            restore_rate=rate,
            last_updated=last_updated,
        )

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            logger.warning(
                "throttle.store_ping_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            return False

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
