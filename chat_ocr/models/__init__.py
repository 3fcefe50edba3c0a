"""
Data models for attachments, OCR results and quota state.
"""

from chat_ocr.models.attachment import FileAttachment, ProcessedAttachment
from chat_ocr.models.ocr import (
    FALLBACK_METHOD,
    PRIMARY_METHOD,
    OCRMethod,
    OCRResult,
    QuotaStatus,
    QuotaUsage,
)

__all__ = [
    "FileAttachment",
    "ProcessedAttachment",
    "OCRMethod",
    "OCRResult",
    "QuotaStatus",
    "QuotaUsage",
    "PRIMARY_METHOD",
    "FALLBACK_METHOD",
]
