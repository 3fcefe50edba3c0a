"""
OCR result and quota models returned by the orchestration layer.
"""

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, Field, computed_field


OCRMethod = Literal["google-vision", "tesseract"]

PRIMARY_METHOD: OCRMethod = "google-vision"
FALLBACK_METHOD: OCRMethod = "tesseract"


class OCRResult(BaseModel):
    """
    Normalized OCR outcome for a single attachment.

    Attributes:
        text: Extracted text (possibly empty)
        method: Backend whose text is returned (after any fallback)
        confidence: 0-100 for every backend; 0 when no text was found
        processing_time_ms: Wall-clock duration of the attempt
        error: Set iff extraction failed
        page_count: Pages processed (1 for images)
        metadata: Backend-specific details (direct_text, pages_ocr, ...)
    """

    model_config = {"frozen": True}

    text: str = ""
    method: OCRMethod
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    processing_time_ms: int = 0
    error: str | None = None
    page_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.error is None


class QuotaUsage(BaseModel):
    """Primary-backend consumption for one calendar month."""

    used: int = Field(..., ge=0)
    limit: int = Field(..., gt=0)
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$", description="YYYY-MM")
    reset_date: date = Field(..., description="First day of next month")

    @computed_field
    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


class QuotaStatus(BaseModel):
    """Display-oriented quota summary."""

    percentage: float
    status: Literal["green", "yellow", "red"]
    message: str
