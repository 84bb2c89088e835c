"""Throttle guard dependency for FastAPI routes.

This module wires the quota tracker into the HTTP layer for services that
proxy the protected API on behalf of tenants.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Shared state lives in the store: the tracker itself is stateless, so the
  process-wide instance only caches configuration and the store client.

Tenant resolution:
- The tenant comes from the configured header (X-Tenant-ID by default).
- Without it, the client IP is used.
"""

from __future__ import annotations

import asyncio
import logging
import math
from decimal import Decimal

from fastapi import HTTPException, Request, status

from quota_tracker.adapters.throttle_store.base import AbstractThrottleStore
from quota_tracker.adapters.throttle_store.factory import create_throttle_store
from quota_tracker.core.config import settings
from quota_tracker.core.errors import BackendUnavailable
from quota_tracker.core.restoration import ThrottleResult
from quota_tracker.services.throttle_service import QuotaTracker

logger = logging.getLogger(__name__)


_tracker: QuotaTracker | None = None
_tracker_config: str | None = None
_store: AbstractThrottleStore | None = None
_store_config: tuple[str, str] | None = None
_closing: set[asyncio.Task] = set()


def _retire_store(store: AbstractThrottleStore) -> None:
    """Close a replaced store on the running loop, if there is one."""

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.warning(
            "throttle.store_retired_without_loop",
            extra={"store_type": type(store).__name__},
        )
        return

    task = loop.create_task(store.close())
    _closing.add(task)
    task.add_done_callback(_closing.discard)


def get_quota_tracker() -> QuotaTracker:
    """Return a process-wide quota tracker.

    If configuration changes (primarily in tests), the tracker is rebuilt.
    The store is only replaced when the backend or Redis settings change,
    and the replaced store is closed.

    Returns:
        QuotaTracker: Configured tracker instance.
    """

    global _tracker, _tracker_config, _store, _store_config

    store_config = (settings.throttle.backend, settings.redis.model_dump_json())
    if _store is None or _store_config != store_config:
        if _store is not None:
            _retire_store(_store)
        _store = create_throttle_store()
        _store_config = store_config
        _tracker = None

    tracker_config = settings.throttle.model_dump_json()
    if _tracker is None or _tracker_config != tracker_config:
        _tracker = QuotaTracker.from_settings(_store)
        _tracker_config = tracker_config

    return _tracker


async def close_quota_tracker() -> None:
    """Close the process-wide store and forget the tracker."""

    global _tracker, _tracker_config, _store, _store_config

    store = _store
    _tracker = _tracker_config = _store = _store_config = None
    if store is not None:
        await store.close()


def _build_tenant_key(request: Request) -> tuple[str, str]:
    """Resolve the tenant for the current request.

    Returns:
        Tuple of (tenant_key, key_type).
    """

    tenant = request.headers.get(settings.app.tenant_header)
    if tenant and tenant.strip():
        return tenant.strip(), "tenant"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}", "ip"


def _format_points(value: float) -> str:
    """Render points without exponent notation or rounding."""

    value = float(value)
    if value.is_integer():
        return str(int(value))
    return format(Decimal(repr(value)), "f")


def build_throttle_headers(result: ThrottleResult) -> dict[str, str]:
    """Render a throttle result as HTTP rate limit headers.

    Retry-After is omitted when waiting would not help (a cost above the
    ceiling on a full bucket reports a zero wait).
    """

    headers = {
        "X-RateLimit-Limit": _format_points(result.max_capacity),
        "X-RateLimit-Remaining": _format_points(result.remaining_points),
        "X-RateLimit-Restore-Ms": str(result.restore_time_ms),
    }
    if result.retry_after:
        headers["Retry-After"] = str(math.ceil(result.retry_after / 1000))
    return headers


async def enforce_throttle(request: Request) -> ThrottleResult | None:
    """FastAPI dependency enforcing the tenant's budget.

    When enabled, reserves the default cost from the tenant's budget. If the
    budget is exhausted, raises HTTP 429.

    Args:
        request: FastAPI request.

    Returns:
        The ThrottleResult (also stored on ``request.state.throttle``), or
        None when throttling is disabled or skipped.

    Raises:
        HTTPException: 429 Too Many Requests when the budget is exhausted.
        BackendUnavailable: When the store is unreachable and the guard is
            not configured to fail open.
    """

    if not settings.app.throttle_enabled:
        return None

    tracker = get_quota_tracker()
    tenant_key, key_type = _build_tenant_key(request)

    try:
        result = await tracker.check(tenant_key, tier=settings.throttle.plan)
    except BackendUnavailable as exc:
        if not settings.app.throttle_fail_open:
            raise
        logger.warning(
            "throttle.guard_failed_open",
            extra={
                "key_type": key_type,
                "tenant_key": tenant_key,
                "error_code": exc.code,
            },
        )
        return None

    request.state.throttle = result
    if result.allowed:
        return result

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=build_throttle_headers(result) if settings.app.throttle_include_headers else None,
    )
