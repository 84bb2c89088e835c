"""Unit tests for QuotaTracker validation, defaults and error surfacing."""

import logging
import math
from unittest.mock import AsyncMock, Mock

import pytest

from quota_tracker.adapters.throttle_store.base import AbstractThrottleStore
from quota_tracker.adapters.throttle_store.in_memory import InMemoryThrottleStore
from quota_tracker.core.config import ThrottleSettings
from quota_tracker.core.errors import BackendUnavailable, InvalidArgument, InvalidRecord
from quota_tracker.core.restoration import ThrottleRecord
from quota_tracker.core.tiers import Plan
from quota_tracker.schemas.throttle import ThrottleStatus
from quota_tracker.services.throttle_service import QuotaTracker

T0 = 1_700_000_000_000

VALID_STATUS = {"maximumAvailable": 1000, "currentlyAvailable": 400, "restoreRate": 100}


@pytest.fixture
def memory_tracker() -> QuotaTracker:
    return QuotaTracker(InMemoryThrottleStore(), clock=Mock(return_value=T0 / 1000))


class TestArgumentValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("tenant", ["", "   ", None])
    async def test_rejects_empty_tenant(self, memory_tracker: QuotaTracker, tenant) -> None:
        with pytest.raises(InvalidArgument) as exc_info:
            await memory_tracker.check(tenant, 1, T0)

        assert exc_info.value.code == "invalid_argument"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cost", [-1, math.inf, math.nan, "10", True])
    async def test_rejects_bad_cost(self, memory_tracker: QuotaTracker, cost) -> None:
        with pytest.raises(InvalidArgument):
            await memory_tracker.check("store1", cost, T0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("now", [math.inf, -math.inf, math.nan, "now"])
    async def test_rejects_non_finite_now(self, memory_tracker: QuotaTracker, now) -> None:
        with pytest.raises(InvalidArgument):
            await memory_tracker.check("store1", 1, now)
        with pytest.raises(InvalidArgument):
            await memory_tracker.sync("store1", VALID_STATUS, now)

    @pytest.mark.asyncio
    async def test_rejects_unknown_tier(self, memory_tracker: QuotaTracker) -> None:
        with pytest.raises(InvalidArgument):
            await memory_tracker.check("store1", 1, T0, tier="platinum")

    @pytest.mark.asyncio
    async def test_invalid_argument_never_reaches_store(self) -> None:
        store = AsyncMock(spec=AbstractThrottleStore)
        tracker = QuotaTracker(store)

        with pytest.raises(InvalidArgument):
            await tracker.check("store1", -5, T0)

        store.reserve.assert_not_awaited()


class TestStatusValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [
            {"maximumAvailable": 0, "currentlyAvailable": 0, "restoreRate": 100},
            {"maximumAvailable": -10, "currentlyAvailable": 0, "restoreRate": 100},
            {"maximumAvailable": 1000, "currentlyAvailable": 0, "restoreRate": 0},
            {"maximumAvailable": 1000, "currentlyAvailable": 0, "restoreRate": -1},
            {"maximumAvailable": 1000, "currentlyAvailable": -1, "restoreRate": 100},
            {"maximumAvailable": math.inf, "currentlyAvailable": 0, "restoreRate": 100},
            {"maximumAvailable": 1000, "currentlyAvailable": math.nan, "restoreRate": 100},
            {"maximumAvailable": 1000, "restoreRate": 100},
            {"maximumAvailable": "lots", "currentlyAvailable": 0, "restoreRate": 100},
        ],
    )
    async def test_rejects_invalid_status(self, memory_tracker: QuotaTracker, status: dict) -> None:
        with pytest.raises(InvalidRecord) as exc_info:
            await memory_tracker.sync("store1", status, T0)

        assert exc_info.value.code == "invalid_record"

    @pytest.mark.asyncio
    async def test_rejected_sync_leaves_record_unchanged(self, memory_tracker: QuotaTracker) -> None:
        await memory_tracker.sync("store1", VALID_STATUS, T0)
        before = await memory_tracker.get_record("store1")

        with pytest.raises(InvalidRecord):
            await memory_tracker.sync(
                "store1",
                {"maximumAvailable": 1000, "currentlyAvailable": 0, "restoreRate": 0},
                T0 + 1000,
            )

        assert await memory_tracker.get_record("store1") == before

    @pytest.mark.asyncio
    async def test_accepts_model_and_snake_case_mapping(self, memory_tracker: QuotaTracker) -> None:
        await memory_tracker.sync(
            "a",
            ThrottleStatus(maximum_available=500, currently_available=100, restore_rate=50),
            T0,
        )
        await memory_tracker.sync(
            "b",
            {"maximum_available": 500, "currently_available": 100, "restore_rate": 50},
            T0,
        )

        expected = ThrottleRecord(
            maximum_available=500,
            currently_available=100,
            restore_rate=50,
            last_updated=T0,
        )
        assert await memory_tracker.get_record("a") == expected
        assert await memory_tracker.get_record("b") == expected


class TestDefaults:
    @pytest.mark.asyncio
    async def test_default_cost_and_clock_are_used(self) -> None:
        clock = Mock(return_value=T0 / 1000)
        tracker = QuotaTracker(InMemoryThrottleStore(), default_cost=10, clock=clock)
        await tracker.sync("store1", VALID_STATUS)

        result = await tracker.check("store1")

        assert result.remaining_points == 390
        record = await tracker.get_record("store1")
        assert record is not None
        assert record.last_updated == T0

    @pytest.mark.asyncio
    async def test_default_ceiling_is_capped_by_tier(self) -> None:
        tracker = QuotaTracker(InMemoryThrottleStore(), default_ceiling=50_000)

        untiered = await tracker.check("new", 1, T0)
        tiered = await tracker.check("new", 1, T0, tier=Plan.ADVANCED)

        assert untiered.max_capacity == 50_000
        assert tiered.max_capacity == 2000
        assert tiered.remaining_points == 2000

    def test_record_key_uses_prefix(self) -> None:
        tracker = QuotaTracker(InMemoryThrottleStore(), key_prefix="shopify:rateLimit")

        assert tracker.record_key("store1") == "shopify:rateLimit:store1"

    def test_from_settings(self) -> None:
        cfg = ThrottleSettings(key_prefix="quota", default_ceiling=40, default_cost=2, record_ttl_seconds=0)

        tracker = QuotaTracker.from_settings(InMemoryThrottleStore(), cfg)

        assert tracker.record_key("t") == "quota:t"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"default_ceiling": 0},
            {"default_cost": -1},
            {"record_ttl_seconds": -5},
        ],
    )
    def test_invalid_constructor_args(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            QuotaTracker(InMemoryThrottleStore(), **kwargs)


class TestExpiry:
    @pytest.mark.asyncio
    async def test_expired_record_behaves_as_missing(self) -> None:
        store_clock = Mock(return_value=1000.0)
        tracker = QuotaTracker(InMemoryThrottleStore(clock=store_clock), record_ttl_seconds=60)
        await tracker.sync("store1", {"maximumAvailable": 500, "currentlyAvailable": 0, "restoreRate": 1}, T0)

        assert (await tracker.check("store1", 1, T0)).allowed is False

        store_clock.return_value = 1060.0

        result = await tracker.check("store1", 1, T0)
        assert result.allowed is True
        assert result.max_capacity == 1000
        assert await tracker.get_record("store1") is None

    @pytest.mark.asyncio
    async def test_zero_ttl_keeps_record(self) -> None:
        store_clock = Mock(return_value=1000.0)
        tracker = QuotaTracker(InMemoryThrottleStore(clock=store_clock), record_ttl_seconds=0)
        await tracker.sync("store1", VALID_STATUS, T0)

        store_clock.return_value = 1_000_000.0

        assert await tracker.get_record("store1") is not None


class TestBackendFailures:
    @pytest.mark.asyncio
    async def test_backend_unavailable_propagates_from_check_and_sync(self) -> None:
        store = AsyncMock(spec=AbstractThrottleStore)
        store.reserve.side_effect = BackendUnavailable("store down")
        store.overwrite.side_effect = BackendUnavailable("store down")
        tracker = QuotaTracker(store)

        with pytest.raises(BackendUnavailable):
            await tracker.check("store1", 1, T0)
        with pytest.raises(BackendUnavailable):
            await tracker.sync("store1", VALID_STATUS, T0)

    @pytest.mark.asyncio
    async def test_ping_delegates_to_store(self) -> None:
        store = AsyncMock(spec=AbstractThrottleStore)
        store.ping.return_value = False

        assert await QuotaTracker(store).ping() is False


class TestLogging:
    @pytest.mark.asyncio
    async def test_logs_allowed_and_denied_decisions(
        self,
        memory_tracker: QuotaTracker,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        await memory_tracker.sync(
            "store1",
            {"maximumAvailable": 1000, "currentlyAvailable": 5, "restoreRate": 100},
            T0,
        )

        with caplog.at_level(logging.INFO, logger="quota_tracker.services.throttle_service"):
            await memory_tracker.check("store1", 5, T0)
            await memory_tracker.check("store1", 5, T0)

        events = [(r.getMessage(), r.levelno) for r in caplog.records]
        assert ("throttle.allowed", logging.INFO) in events
        assert ("throttle.denied", logging.WARNING) in events

        denied = next(r for r in caplog.records if r.getMessage() == "throttle.denied")
        assert denied.tenant_key == "store1"
        assert denied.retry_after_ms == 10_000

    @pytest.mark.asyncio
    async def test_logs_clamped_sync(
        self,
        memory_tracker: QuotaTracker,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.INFO, logger="quota_tracker.services.throttle_service"):
            await memory_tracker.sync(
                "store1",
                {"maximumAvailable": 5000, "currentlyAvailable": 5000, "restoreRate": 500},
                T0,
                tier="standard",
            )

        synced = next(r for r in caplog.records if r.getMessage() == "throttle.synced")
        assert synced.clamped is True
        assert synced.limit == 1000
