"""
OCR engines and orchestration.
"""

from chat_ocr.ocr.base_ocr import BaseOCR, OCRBackendError, RawOCRResult
from chat_ocr.ocr.ocr_manager import OCRManager

__all__ = ["BaseOCR", "OCRBackendError", "RawOCRResult", "OCRManager"]
