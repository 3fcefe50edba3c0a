"""
Quota tracking for the rate-limited primary OCR backend.
"""

from chat_ocr.quota.quota_tracker import QuotaTracker
from chat_ocr.quota.stores import (
    InMemoryQuotaStore,
    QuotaStore,
    QuotaStoreError,
    SupabaseQuotaStore,
)

__all__ = [
    "QuotaTracker",
    "QuotaStore",
    "QuotaStoreError",
    "InMemoryQuotaStore",
    "SupabaseQuotaStore",
]
