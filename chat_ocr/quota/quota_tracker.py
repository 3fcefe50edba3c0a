"""
Monthly quota tracking for the rate-limited primary OCR backend.

Tracking is best-effort: a failing store never blocks OCR. Reads degrade to
"within budget" and writes are logged and dropped.
"""

import asyncio
import math
from datetime import date, datetime
from typing import Callable

from chat_ocr.logger import get_logger
from chat_ocr.models.ocr import QuotaStatus, QuotaUsage
from chat_ocr.quota.stores import InMemoryQuotaStore, QuotaStore, QuotaStoreError

logger = get_logger(__name__)

# Primary backend is abandoned once this share of the quota is used
SAFETY_BUFFER_RATIO = 0.9

# Status tiers (percent of limit), lower bound inclusive for the upper tier
YELLOW_THRESHOLD = 70
RED_THRESHOLD = 90


def month_key(moment: datetime) -> str:
    """YYYY-MM key for a point in time."""
    return f"{moment.year}-{moment.month:02d}"


def next_reset_date(moment: datetime) -> date:
    """First day of the month following `moment`."""
    if moment.month == 12:
        return date(moment.year + 1, 1, 1)
    return date(moment.year, moment.month + 1, 1)


class QuotaTracker:
    """
    Tracks primary-backend usage per calendar month.

    One tracker per deployment (scope "global" by default). The lock
    serializes read-modify-write within the process; cross-process atomicity
    is the store's job (see SupabaseQuotaStore).

    Usage:
        tracker = QuotaTracker(monthly_limit=1000)
        if await tracker.should_use_primary():
            ...
            await tracker.record_usage()
    """

    def __init__(
        self,
        monthly_limit: int = 1000,
        store: QuotaStore | None = None,
        scope: str = "global",
        now: Callable[[], datetime] = datetime.now
    ):
        if monthly_limit <= 0:
            raise ValueError(f"monthly_limit must be positive, got {monthly_limit}")

        self.monthly_limit = monthly_limit
        self.store = store or InMemoryQuotaStore()
        self.scope = scope
        self._now = now
        self._lock = asyncio.Lock()

    def _fresh_usage(self, moment: datetime, used: int = 0) -> QuotaUsage:
        return QuotaUsage(
            used=used,
            limit=self.monthly_limit,
            month=month_key(moment),
            reset_date=next_reset_date(moment)
        )

    async def record_usage(self, amount: int = 1) -> None:
        """
        Record billed primary-backend calls for the current month.

        Never raises: store failures are logged and swallowed.

        Args:
            amount: Number of billed calls
        """
        current_month = month_key(self._now())

        async with self._lock:
            try:
                used = await self.store.increment(self.scope, current_month, amount)
            except QuotaStoreError as e:
                logger.error("Failed to record OCR usage", extra={
                    "scope": self.scope,
                    "amount": amount,
                    "error": str(e)
                })
                return

        logger.info("OCR quota usage recorded", extra={
            "scope": self.scope,
            "month": current_month,
            "used": used,
            "limit": self.monthly_limit
        })

        if used >= math.floor(self.monthly_limit * SAFETY_BUFFER_RATIO):
            logger.warning("OCR quota safety buffer reached", extra={
                "scope": self.scope,
                "used": used,
                "limit": self.monthly_limit
            })

    async def get_current_usage(self) -> QuotaUsage:
        """
        Get usage for the current month.

        Stored state from a previous month yields a zeroed snapshot; the
        reset itself is only persisted by the next write.

        Returns:
            QuotaUsage for the current month
        """
        moment = self._now()

        try:
            stored = await self.store.load(self.scope)
        except QuotaStoreError as e:
            logger.error("Failed to read OCR usage, assuming within budget", extra={
                "scope": self.scope,
                "error": str(e)
            })
            return self._fresh_usage(moment)

        if stored is None or stored.month != month_key(moment):
            return self._fresh_usage(moment)

        return self._fresh_usage(moment, used=max(0, stored.used))

    async def should_use_primary(self) -> bool:
        """
        Check whether the primary backend still has budget.

        Keeps a 10% buffer so the last requests of the month are not
        rejected upstream after being attempted.
        """
        usage = await self.get_current_usage()
        buffer_limit = math.floor(self.monthly_limit * SAFETY_BUFFER_RATIO)
        return usage.used < buffer_limit

    async def get_quota_status(self) -> QuotaStatus:
        """Quota summary for display."""
        usage = await self.get_current_usage()
        percentage = usage.used / self.monthly_limit * 100

        if percentage < YELLOW_THRESHOLD:
            return QuotaStatus(
                percentage=percentage,
                status="green",
                message=f"{usage.remaining} requests remaining this month"
            )
        elif percentage < RED_THRESHOLD:
            return QuotaStatus(
                percentage=percentage,
                status="yellow",
                message=f"Warning: {usage.remaining} requests remaining"
            )
        else:
            return QuotaStatus(
                percentage=percentage,
                status="red",
                message=f"Limit almost reached: {usage.remaining} requests remaining"
            )

    async def reset_quota(self) -> QuotaUsage:
        """
        Zero usage for the current month (admin override).

        Returns:
            The zeroed usage snapshot
        """
        moment = self._now()

        async with self._lock:
            try:
                await self.store.save(self.scope, month_key(moment), 0)
            except QuotaStoreError as e:
                logger.error("Failed to reset OCR quota", extra={
                    "scope": self.scope,
                    "error": str(e)
                })

        logger.info("OCR quota reset", extra={"scope": self.scope})
        return self._fresh_usage(moment)
