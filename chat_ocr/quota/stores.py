"""
Persistence backends for monthly OCR quota counters.

Quota is enforced server-side: every process of a deployment must agree on
one counter per scope, so production uses Supabase. The in-memory store is
for single-process deployments and tests.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass

from chat_ocr.logger import get_logger

logger = get_logger(__name__)


class QuotaStoreError(Exception):
    """Quota counters could not be read or written."""
    pass


@dataclass
class StoredQuota:
    """Persisted counter for one scope."""
    month: str
    used: int


class QuotaStore(ABC):
    """Abstract storage for per-scope monthly counters."""

    @abstractmethod
    async def load(self, scope: str) -> StoredQuota | None:
        """
        Load the stored counter.

        Returns:
            StoredQuota, or None if nothing was ever recorded

        Raises:
            QuotaStoreError: If the store cannot be read
        """
        pass

    @abstractmethod
    async def save(self, scope: str, month: str, used: int) -> None:
        """
        Overwrite the counter for a scope.

        Raises:
            QuotaStoreError: If the store cannot be written
        """
        pass

    @abstractmethod
    async def increment(self, scope: str, month: str, amount: int) -> int:
        """
        Add `amount` to the counter of `month`.

        If the stored month differs from `month`, the counter restarts at
        `amount`. Must be atomic with respect to other writers.

        Returns:
            New `used` value

        Raises:
            QuotaStoreError: If the store cannot be written
        """
        pass


class InMemoryQuotaStore(QuotaStore):
    """Process-local store. Atomicity comes from the tracker's lock."""

    def __init__(self):
        self._records: dict[str, StoredQuota] = {}

    async def load(self, scope: str) -> StoredQuota | None:
        record = self._records.get(scope)
        if record is None:
            return None
        return StoredQuota(month=record.month, used=record.used)

    async def save(self, scope: str, month: str, used: int) -> None:
        self._records[scope] = StoredQuota(month=month, used=used)

    async def increment(self, scope: str, month: str, amount: int) -> int:
        record = self._records.get(scope)
        if record is None or record.month != month:
            used = amount
        else:
            used = record.used + amount
        self._records[scope] = StoredQuota(month=month, used=used)
        return used


class SupabaseQuotaStore(QuotaStore):
    """
    Supabase-backed store (single source of truth across processes).

    Table:
        ocr_quota_usage(scope text primary key, month text, used int)

    Increments go through the `increment_ocr_quota` RPC, which performs the
    month check and the addition in one statement:

        INSERT INTO ocr_quota_usage (scope, month, used)
        VALUES (p_scope, p_month, p_amount)
        ON CONFLICT (scope) DO UPDATE SET
            used = CASE WHEN ocr_quota_usage.month = p_month
                        THEN ocr_quota_usage.used + p_amount
                        ELSE p_amount END,
            month = p_month
        RETURNING used;
    """

    TABLE = "ocr_quota_usage"
    INCREMENT_RPC = "increment_ocr_quota"

    def __init__(self, supabase_client=None):
        if supabase_client is None:
            from chat_ocr.database import get_supabase_service
            supabase_client = get_supabase_service()
        self.supabase = supabase_client

    # The Supabase client is synchronous; queries run on a worker thread.

    def _select(self, scope: str):
        return self.supabase.table(self.TABLE) \
            .select("month, used") \
            .eq("scope", scope) \
            .execute()

    def _upsert(self, scope: str, month: str, used: int):
        return self.supabase.table(self.TABLE) \
            .upsert({"scope": scope, "month": month, "used": used}) \
            .execute()

    def _increment_rpc(self, scope: str, month: str, amount: int):
        return self.supabase.rpc(self.INCREMENT_RPC, {
            "p_scope": scope,
            "p_month": month,
            "p_amount": amount
        }).execute()

    async def load(self, scope: str) -> StoredQuota | None:
        try:
            result = await asyncio.to_thread(self._select, scope)
        except Exception as e:
            raise QuotaStoreError(f"Failed to load quota for {scope}: {e}") from e

        if not result.data:
            return None

        row = result.data[0]
        return StoredQuota(month=row["month"], used=int(row["used"]))

    async def save(self, scope: str, month: str, used: int) -> None:
        try:
            await asyncio.to_thread(self._upsert, scope, month, used)
        except Exception as e:
            raise QuotaStoreError(f"Failed to save quota for {scope}: {e}") from e

    async def increment(self, scope: str, month: str, amount: int) -> int:
        try:
            result = await asyncio.to_thread(self._increment_rpc, scope, month, amount)
        except Exception as e:
            raise QuotaStoreError(f"Failed to increment quota for {scope}: {e}") from e

        data = result.data
        if isinstance(data, list):
            data = data[0] if data else None
        if isinstance(data, dict):
            data = data.get("used")
        if data is None:
            raise QuotaStoreError(f"Empty response from {self.INCREMENT_RPC}")

        logger.debug("Quota incremented in Supabase", extra={
            "scope": scope,
            "month": month,
            "used": data
        })
        return int(data)
