"""
Base OCR interface - abstract class for all OCR engines.
The manager only talks to this interface, so Google Vision and Tesseract are
interchangeable behind it.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List
from dataclasses import dataclass, field

from chat_ocr.models.attachment import FileAttachment


class OCRBackendError(Exception):
    """An OCR engine failed to extract text."""

    def __init__(self, engine: str, message: str):
        self.engine = engine
        self.message = message
        super().__init__(f"{engine}: {message}")


@dataclass
class RawOCRResult:
    """
    Engine-level OCR result, before normalization.

    Attributes:
        text: Full extracted text
        confidence: Overall confidence score (0.0 to 1.0)
        lines: Individual text elements with metadata
        processing_time_ms: Processing time in milliseconds
        engine_used: Name of OCR engine used
        page_count: Number of pages processed
        metadata: Engine-specific metadata (cost, direct_text, ...)
    """
    text: str
    confidence: float
    processing_time_ms: int
    engine_used: str
    lines: List[Dict[str, Any]] = field(default_factory=list)
    page_count: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseOCR(ABC):
    """
    Abstract base class for all OCR engines.

    Implementations:
    - GoogleVisionOCR: Cloud API, rate-limited by monthly quota
    - TesseractOCR: Local, unlimited, slower and less accurate

    Usage:
        result = await engine.extract_from_document(attachment)
        print(f"Extracted {len(result.text)} chars with {result.confidence:.1%} confidence")
    """

    async def extract_from_document(self, attachment: FileAttachment) -> RawOCRResult:
        """
        Extract text from an attachment, dispatching on document class.

        Raises:
            OCRBackendError: If decoding or extraction fails
        """
        try:
            content = attachment.content_bytes()
        except ValueError as e:
            raise OCRBackendError(self.get_engine_name(), str(e)) from e

        if attachment.is_pdf:
            return await self.extract_text_from_pdf(content)
        return await self.extract_text_from_image(content)

    @abstractmethod
    async def extract_text_from_pdf(self, pdf_bytes: bytes) -> RawOCRResult:
        """
        Extract text from a PDF document.

        Raises:
            OCRBackendError: If OCR processing fails
        """
        pass

    @abstractmethod
    async def extract_text_from_image(self, image_bytes: bytes) -> RawOCRResult:
        """
        Extract text from raster image bytes (JPEG, PNG, HEIC, ...).

        Raises:
            OCRBackendError: If OCR processing fails
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """
        Cheap, local check that the engine can be used (configured,
        binary present). No network calls.
        """
        pass

    @abstractmethod
    def get_engine_name(self) -> str:
        """
        Return engine name for logging/metrics.

        Returns:
            Engine name ("google_vision", "tesseract")
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if OCR engine is reachable and healthy.

        Returns:
            True if engine is ready, False otherwise
        """
        pass

    async def close(self) -> None:
        """Release long-lived resources. Must be idempotent."""
        return None
