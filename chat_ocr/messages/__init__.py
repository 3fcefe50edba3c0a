"""
Chat message integration of OCR results.
"""

from chat_ocr.messages.formatter import build_content_with_ocr, build_core_messages
from chat_ocr.messages.integration import (
    apply_ocr_results,
    mark_processing,
    process_file_attachments_with_ocr,
)

__all__ = [
    "build_content_with_ocr",
    "build_core_messages",
    "apply_ocr_results",
    "mark_processing",
    "process_file_attachments_with_ocr",
]
