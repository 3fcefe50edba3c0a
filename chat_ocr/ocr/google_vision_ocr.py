"""
Google Cloud Vision API OCR implementation (primary engine).
Billed per request and tracked against the monthly quota.
Images use TEXT_DETECTION, PDFs are sent whole to files:annotate.
"""

import asyncio
import base64
import time
import requests
from typing import Dict, Any, List
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential
from chat_ocr.ocr.base_ocr import BaseOCR, OCRBackendError, RawOCRResult
from chat_ocr.ocr.confidence import estimate_confidence
from chat_ocr.logger import get_logger

logger = get_logger(__name__)


def _is_transient(error: BaseException) -> bool:
    """Connection problems, rate limiting and server errors are retried."""
    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    if isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
        return error.response.status_code == 429 or error.response.status_code >= 500
    return False


class GoogleVisionOCR(BaseOCR):
    """
    Google Cloud Vision API implementation.

    Features:
    - TEXT_DETECTION for raster images
    - DOCUMENT_TEXT_DETECTION for PDFs (the API reads the first 5 pages by default)
    - No local resources needed

    Limitations:
    - Requires API key and billing enabled
    - Online only
    - No native confidence for TEXT_DETECTION (estimated heuristically)

    Configuration:
        GOOGLE_VISION_API_KEY=your_key_here
    """

    def __init__(
        self,
        api_key: str | None,
        endpoint: str = "https://vision.googleapis.com/v1",
        timeout_seconds: float = 30.0,
        language_hints: List[str] | None = None
    ):
        self.api_key = api_key
        self.endpoint = endpoint.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.language_hints = language_hints or ["fr", "en"]
        logger.info("Google Vision OCR initialized", extra={
            "configured": self.is_available()
        })

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def extract_text_from_image(self, image_bytes: bytes) -> RawOCRResult:
        """
        Extract text from an image using TEXT_DETECTION.

        Args:
            image_bytes: Raw image bytes

        Returns:
            RawOCRResult with extracted text and metadata

        Raises:
            OCRBackendError: If the API call or response parsing fails
        """
        start_time = time.time()

        payload = {
            "requests": [{
                "image": {"content": base64.b64encode(image_bytes).decode('utf-8')},
                "features": [{"type": "TEXT_DETECTION"}],
                "imageContext": {"languageHints": self.language_hints}
            }]
        }

        result = await self._post("images:annotate", payload)
        annotation = self._first_response(result)

        detections = annotation.get('textAnnotations', [])
        # First annotation is the full text, the rest are individual words
        full_text = detections[0].get('description', '') if detections else ''

        lines = [
            {
                "text": detection.get('description', ''),
                "bbox": self._extract_bbox(detection.get('boundingPoly', {}))
            }
            for detection in detections[1:]
        ]

        processing_time = int((time.time() - start_time) * 1000)
        confidence = estimate_confidence(len(full_text), len(detections))

        logger.info("Google Vision image OCR completed", extra={
            "processing_time_ms": processing_time,
            "text_length": len(full_text),
            "detections": len(detections)
        })

        return RawOCRResult(
            text=full_text,
            confidence=confidence,
            lines=lines,
            processing_time_ms=processing_time,
            engine_used=self.get_engine_name(),
            page_count=1,
            metadata={
                "api_version": "v1",
                "features_used": ["TEXT_DETECTION"],
                "confidence_estimated": True
            }
        )

    async def extract_text_from_pdf(self, pdf_bytes: bytes) -> RawOCRResult:
        """
        Extract text from a PDF sent as an opaque document.

        Args:
            pdf_bytes: Raw PDF bytes

        Returns:
            RawOCRResult with page texts joined in order

        Raises:
            OCRBackendError: If the API call or response parsing fails
        """
        start_time = time.time()

        payload = {
            "requests": [{
                "inputConfig": {
                    "content": base64.b64encode(pdf_bytes).decode('utf-8'),
                    "mimeType": "application/pdf"
                },
                "features": [{"type": "DOCUMENT_TEXT_DETECTION"}],
                "imageContext": {"languageHints": self.language_hints}
            }]
        }

        result = await self._post("files:annotate", payload)
        file_response = self._first_response(result)

        page_texts = []
        block_count = 0
        for page_response in file_response.get('responses', []):
            if 'error' in page_response:
                raise OCRBackendError(
                    self.get_engine_name(),
                    page_response['error'].get('message', 'Unknown page error')
                )
            annotation = page_response.get('fullTextAnnotation', {})
            page_texts.append(annotation.get('text', ''))
            for page in annotation.get('pages', []):
                block_count += len(page.get('blocks', []))

        full_text = "\n".join(text.strip() for text in page_texts if text.strip())
        processing_time = int((time.time() - start_time) * 1000)
        confidence = estimate_confidence(len(full_text), block_count)

        logger.info("Google Vision PDF OCR completed", extra={
            "processing_time_ms": processing_time,
            "text_length": len(full_text),
            "pages": len(page_texts),
            "total_pages": file_response.get('totalPages')
        })

        return RawOCRResult(
            text=full_text,
            confidence=confidence,
            processing_time_ms=processing_time,
            engine_used=self.get_engine_name(),
            page_count=len(page_texts),
            metadata={
                "api_version": "v1",
                "features_used": ["DOCUMENT_TEXT_DETECTION"],
                "total_pages": file_response.get('totalPages'),
                "confidence_estimated": True
            }
        )

    async def _post(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Call a Vision API method off the event loop."""
        if not self.api_key:
            raise OCRBackendError(self.get_engine_name(), "GOOGLE_VISION_API_KEY not configured")

        url = f"{self.endpoint}/{method}"

        try:
            return await asyncio.to_thread(self._send, url, payload)
        except requests.exceptions.RequestException as e:
            logger.error("Google Vision API request failed", extra={
                "method": method,
                "error": str(e),
                "status_code": getattr(e.response, 'status_code', None)
            })
            raise OCRBackendError(self.get_engine_name(), f"API request failed: {e}") from e
        except ValueError as e:
            raise OCRBackendError(self.get_engine_name(), f"Invalid JSON response: {e}") from e

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True
    )
    def _send(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST with retry on connection errors, 429 and 5xx."""
        response = requests.post(
            url,
            params={"key": self.api_key},
            json=payload,
            timeout=self.timeout_seconds,
            headers={"Content-Type": "application/json"}
        )
        response.raise_for_status()
        return response.json()

    def _first_response(self, result: Dict[str, Any]) -> Dict[str, Any]:
        """Unwrap the single response of a batch call, surfacing API errors."""
        if not result.get('responses'):
            raise OCRBackendError(self.get_engine_name(), "No response from Google Vision API")

        annotation = result['responses'][0]

        if 'error' in annotation:
            error_msg = annotation['error'].get('message', 'Unknown error')
            logger.error("Google Vision API error", extra={
                "error": error_msg,
                "code": annotation['error'].get('code')
            })
            raise OCRBackendError(self.get_engine_name(), f"API error: {error_msg}")

        return annotation

    def _extract_bbox(self, bounding_poly: Dict) -> List[Dict[str, int]]:
        """
        Extract bounding box vertices from Google Vision format.

        Args:
            bounding_poly: Google Vision bounding poly object

        Returns:
            List of vertices with x, y coordinates
        """
        vertices = bounding_poly.get('vertices', [])
        return [
            {"x": v.get('x', 0), "y": v.get('y', 0)}
            for v in vertices
        ]

    def get_engine_name(self) -> str:
        """Return engine name."""
        return "google_vision"

    async def health_check(self) -> bool:
        """
        Check if Google Vision API is accessible.

        Sends a 1x1 PNG. Note that this is a billed request.

        Returns:
            True if API responds, False otherwise
        """
        if not self.is_available():
            return False

        test_image = base64.b64decode(
            b'iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=='
        )

        try:
            await self.extract_text_from_image(test_image)
            logger.info("Google Vision API health check passed")
            return True
        except OCRBackendError as e:
            logger.warning("Google Vision API health check failed", extra={
                "error": str(e)
            })
            return False
