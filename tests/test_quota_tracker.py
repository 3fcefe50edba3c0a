"""
Tests for monthly quota tracking.
"""

import asyncio
import math
from datetime import date, datetime

import pytest

from chat_ocr.quota.quota_tracker import QuotaTracker, month_key, next_reset_date
from chat_ocr.quota.stores import InMemoryQuotaStore, QuotaStoreError, StoredQuota


class FailingStore(InMemoryQuotaStore):
    """Store whose every operation fails."""

    async def load(self, scope):
        raise QuotaStoreError("connection refused")

    async def save(self, scope, month, used):
        raise QuotaStoreError("connection refused")

    async def increment(self, scope, month, amount):
        raise QuotaStoreError("connection refused")


class SlowReadModifyWriteStore(InMemoryQuotaStore):
    """Non-atomic increment that yields between read and write."""

    async def increment(self, scope, month, amount):
        record = await self.load(scope)
        await asyncio.sleep(0)
        used = amount if record is None or record.month != month else record.used + amount
        await asyncio.sleep(0)
        await self.save(scope, month, used)
        return used


class TestMonthHelpers:
    """Tests for month key and reset date helpers."""

    def test_month_key_zero_padded(self):
        assert month_key(datetime(2024, 3, 31)) == "2024-03"

    def test_next_reset_date_mid_year(self):
        assert next_reset_date(datetime(2024, 2, 15)) == date(2024, 3, 1)

    def test_next_reset_date_december(self):
        assert next_reset_date(datetime(2024, 12, 31, 23, 59)) == date(2025, 1, 1)


class TestQuotaTracker:
    """Tests for QuotaTracker."""

    @pytest.mark.asyncio
    async def test_fresh_tracker_has_zero_usage(self, quota_tracker):
        usage = await quota_tracker.get_current_usage()

        assert usage.used == 0
        assert usage.remaining == 1000
        assert usage.limit == 1000
        assert usage.month == "2024-02"
        assert usage.reset_date == date(2024, 3, 1)

    @pytest.mark.asyncio
    async def test_record_usage_increments(self, quota_tracker):
        await quota_tracker.record_usage()
        await quota_tracker.record_usage(2)

        usage = await quota_tracker.get_current_usage()
        assert usage.used == 3
        assert usage.remaining == 997

    @pytest.mark.asyncio
    async def test_month_rollover_returns_zeroed_usage(self, quota_store, frozen_now):
        await quota_store.save("global", "2024-01", 500)
        tracker = QuotaTracker(monthly_limit=1000, store=quota_store, now=frozen_now)

        usage = await tracker.get_current_usage()

        assert usage.used == 0
        assert usage.month == "2024-02"
        # Reset is only persisted by the next write
        assert await quota_store.load("global") == StoredQuota(month="2024-01", used=500)

    @pytest.mark.asyncio
    async def test_record_usage_after_rollover_restarts_count(self, quota_store, frozen_now):
        await quota_store.save("global", "2024-01", 500)
        tracker = QuotaTracker(monthly_limit=1000, store=quota_store, now=frozen_now)

        await tracker.record_usage(1)

        assert await quota_store.load("global") == StoredQuota(month="2024-02", used=1)

    @pytest.mark.asyncio
    async def test_remaining_never_negative(self, quota_store, frozen_now):
        await quota_store.save("global", "2024-02", 1200)
        tracker = QuotaTracker(monthly_limit=1000, store=quota_store, now=frozen_now)

        usage = await tracker.get_current_usage()

        assert usage.used == 1200
        assert usage.remaining == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [1, 7, 10, 100, 1000, 1001])
    async def test_should_use_primary_buffer(self, quota_store, frozen_now, limit):
        """Primary is allowed strictly below floor(limit * 0.9)."""
        tracker = QuotaTracker(monthly_limit=limit, store=quota_store, now=frozen_now)
        buffer_limit = math.floor(limit * 0.9)

        if buffer_limit > 0:
            await quota_store.save("global", "2024-02", buffer_limit - 1)
            assert await tracker.should_use_primary() is True

        await quota_store.save("global", "2024-02", buffer_limit)
        assert await tracker.should_use_primary() is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("used,expected_status", [
        (0, "green"),
        (69, "green"),
        (70, "yellow"),
        (89, "yellow"),
        (90, "red"),
        (100, "red"),
    ])
    async def test_quota_status_tiers(self, quota_store, frozen_now, used, expected_status):
        tracker = QuotaTracker(monthly_limit=100, store=quota_store, now=frozen_now)
        await quota_store.save("global", "2024-02", used)

        status = await tracker.get_quota_status()

        assert status.status == expected_status
        assert status.percentage == pytest.approx(used)
        assert str(100 - used) in status.message

    @pytest.mark.asyncio
    async def test_reset_quota(self, quota_tracker):
        await quota_tracker.record_usage(40)

        usage = await quota_tracker.reset_quota()

        assert usage.used == 0
        assert (await quota_tracker.get_current_usage()).used == 0

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, frozen_now):
        store = SlowReadModifyWriteStore()
        tracker = QuotaTracker(monthly_limit=1000, store=store, now=frozen_now)

        await asyncio.gather(*(tracker.record_usage() for _ in range(50)))

        assert (await tracker.get_current_usage()).used == 50

    @pytest.mark.asyncio
    async def test_store_failures_are_swallowed(self, frozen_now):
        tracker = QuotaTracker(monthly_limit=1000, store=FailingStore(), now=frozen_now)

        await tracker.record_usage()
        usage = await tracker.get_current_usage()

        # Degrades to "within budget"
        assert usage.used == 0
        assert await tracker.should_use_primary() is True
        assert (await tracker.reset_quota()).used == 0

    def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            QuotaTracker(monthly_limit=0)
