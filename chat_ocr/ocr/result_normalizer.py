"""
Conversion of engine-level results into the normalized OCRResult.

Engines report confidence on 0.0-1.0; OCRResult holds 0-100 for every
backend.
"""

from chat_ocr.models.ocr import OCRMethod, OCRResult
from chat_ocr.ocr.base_ocr import RawOCRResult


def normalize_confidence(confidence: float, text: str) -> float:
    """
    Scale a 0-1 confidence to 0-100, clamped. No text means 0.

    Example:
        >>> normalize_confidence(0.873, "Invoice")
        87.3
    """
    if not text.strip():
        return 0.0
    return round(min(max(confidence, 0.0), 1.0) * 100, 2)


def normalize_result(raw: RawOCRResult, method: OCRMethod) -> OCRResult:
    """
    Build the caller-facing result.

    Args:
        raw: Engine result
        method: Backend whose text is returned. Set by the manager, never
            taken from the engine.
    """
    return OCRResult(
        text=raw.text,
        method=method,
        confidence=normalize_confidence(raw.confidence, raw.text),
        processing_time_ms=raw.processing_time_ms,
        page_count=raw.page_count,
        metadata=dict(raw.metadata, engine=raw.engine_used)
    )


def failed_result(error: str, method: OCRMethod, processing_time_ms: int = 0) -> OCRResult:
    """Terminal failure: no text, zero confidence, error populated."""
    return OCRResult(
        text="",
        method=method,
        confidence=0.0,
        processing_time_ms=processing_time_ms,
        error=error
    )
