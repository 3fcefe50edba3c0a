"""
Tesseract OCR for text extraction (fallback engine).
Self-hosted, free, unlimited. Slower and less accurate than Google Vision.
PDFs with a usable text layer skip recognition entirely.
"""

import asyncio
import io
import os
import shutil
import time
from concurrent.futures import ThreadPoolExecutor

import pytesseract
from PIL import Image

from chat_ocr.logger import get_logger
from chat_ocr.ocr.base_ocr import BaseOCR, OCRBackendError, RawOCRResult
from chat_ocr.ocr.pdf_extractor import PDFExtractor, has_meaningful_text
from chat_ocr.ocr.preprocessor import ImagePreprocessor

logger = get_logger(__name__)


class TesseractOCR(BaseOCR):
    """
    Tesseract OCR engine wrapper (fallback engine).

    Recognition runs on a bounded worker pool created on first use and shut
    down by close(). Each worker drives its own tesseract process, so pool
    size bounds concurrent recognitions.
    """

    def __init__(
        self,
        tesseract_cmd: str = "/usr/bin/tesseract",
        languages: str = "fra+eng",
        max_workers: int = 3,
        pdf_extractor: PDFExtractor | None = None,
        preprocess: bool = True
    ):
        tesseract_path = tesseract_cmd

        # If configured path doesn't exist, try to find tesseract in PATH
        if not self._command_exists(tesseract_path):
            found_path = shutil.which('tesseract')
            if found_path:
                tesseract_path = found_path
                logger.info(f"Tesseract found at {tesseract_path}")
            else:
                logger.warning(f"Tesseract not found at {tesseract_path} or in PATH")

        pytesseract.pytesseract.tesseract_cmd = tesseract_path
        self.tesseract_cmd = tesseract_path
        self.languages = languages
        self.max_workers = max_workers
        self.pdf_extractor = pdf_extractor or PDFExtractor()
        self.preprocess = preprocess
        self._executor: ThreadPoolExecutor | None = None
        logger.info("Tesseract OCR initialized", extra={"languages": languages})

    def _command_exists(self, cmd: str) -> bool:
        """Check if a command exists at the given path"""
        return os.path.isfile(cmd) and os.access(cmd, os.X_OK)

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix="tesseract"
            )
            logger.debug("Tesseract worker pool started", extra={"max_workers": self.max_workers})
        return self._executor

    def is_available(self) -> bool:
        return self._command_exists(self.tesseract_cmd)

    async def extract_text_from_image(self, image_bytes: bytes) -> RawOCRResult:
        """
        Extract text from an image using Tesseract.

        Args:
            image_bytes: Image file bytes

        Returns:
            RawOCRResult with standardized format

        Raises:
            OCRBackendError: If recognition fails
        """
        start_time = time.time()

        text, confidence, lines = await self._recognize(image_bytes)
        processing_time = int((time.time() - start_time) * 1000)

        logger.info("Tesseract OCR complete", extra={
            "confidence": confidence,
            "word_count": len(text.split()),
            "processing_time_ms": processing_time
        })

        return RawOCRResult(
            text=text,
            confidence=confidence,
            lines=lines,
            processing_time_ms=processing_time,
            engine_used=self.get_engine_name(),
            page_count=1,
            metadata={
                "word_count": len(text.split()),
                "preprocessed": self.preprocess
            }
        )

    async def extract_text_from_pdf(self, pdf_bytes: bytes) -> RawOCRResult:
        """
        Extract text from a PDF.

        Reads the embedded text layer first; only if it is missing or too
        thin are pages rendered and recognized.

        Args:
            pdf_bytes: PDF file bytes

        Returns:
            RawOCRResult; confidence 1.0 for direct text extraction

        Raises:
            OCRBackendError: If the PDF cannot be read or recognized
        """
        start_time = time.time()

        try:
            direct = await self.pdf_extractor.extract_text(pdf_bytes)
        except Exception as e:
            logger.warning("Direct PDF text extraction failed, rendering pages", extra={
                "error": str(e)
            })
            direct = None

        if direct is not None and has_meaningful_text(direct["text"]):
            processing_time = int((time.time() - start_time) * 1000)
            logger.info("PDF text layer used, OCR skipped", extra={
                "page_count": direct["page_count"],
                "word_count": direct["word_count"]
            })
            return RawOCRResult(
                text=direct["text"],
                confidence=1.0,
                processing_time_ms=processing_time,
                engine_used=self.get_engine_name(),
                page_count=direct["page_count"],
                metadata={"direct_text": True, "word_count": direct["word_count"]}
            )

        try:
            page_images, total_pages = await self.pdf_extractor.render_pages(pdf_bytes)
        except Exception as e:
            raise OCRBackendError(self.get_engine_name(), f"PDF rendering failed: {e}") from e

        if not page_images:
            raise OCRBackendError(self.get_engine_name(), "PDF has no renderable pages")

        page_texts = []
        confidences = []
        for page_number, page_image in enumerate(page_images, start=1):
            text, confidence, _ = await self._recognize(page_image)
            page_texts.append(f"--- Page {page_number} ---\n{text.strip()}")
            confidences.append(confidence)

        full_text = "\n\n".join(page_texts)
        avg_confidence = sum(confidences) / len(confidences)
        processing_time = int((time.time() - start_time) * 1000)

        logger.info("Tesseract PDF OCR complete", extra={
            "pages_ocr": len(page_images),
            "total_pages": total_pages,
            "confidence": avg_confidence,
            "processing_time_ms": processing_time
        })

        return RawOCRResult(
            text=full_text,
            confidence=avg_confidence,
            processing_time_ms=processing_time,
            engine_used=self.get_engine_name(),
            page_count=len(page_images),
            metadata={
                "direct_text": False,
                "pages_ocr": len(page_images),
                "total_pages": total_pages,
                "truncated": total_pages > len(page_images)
            }
        )

    async def _recognize(self, image_bytes: bytes) -> tuple[str, float, list[dict]]:
        """Run preprocessing and recognition on the worker pool."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                self._get_executor(), self._recognize_sync, image_bytes
            )
        except OCRBackendError:
            raise
        except Exception as e:
            logger.error("Tesseract OCR failed", extra={"error": str(e)}, exc_info=True)
            raise OCRBackendError(self.get_engine_name(), str(e)) from e

    def _recognize_sync(self, image_bytes: bytes) -> tuple[str, float, list[dict]]:
        """
        Recognize one image.

        Returns:
            Tuple of (text, confidence 0-1, word boxes)
        """
        if self.preprocess:
            image_bytes = ImagePreprocessor.preprocess(image_bytes)

        image = Image.open(io.BytesIO(image_bytes))

        ocr_data = pytesseract.image_to_data(
            image,
            lang=self.languages,
            output_type=pytesseract.Output.DICT
        )

        text = self._join_lines(ocr_data)

        # -1 means no confidence (layout elements, not words)
        confidences = [
            float(conf) for conf, word in zip(ocr_data['conf'], ocr_data['text'])
            if float(conf) != -1 and word.strip()
        ]
        avg_confidence = sum(confidences) / len(confidences) if confidences else 0.0

        return text, avg_confidence / 100.0, self._extract_lines_with_bbox(ocr_data)

    def _join_lines(self, ocr_data: dict) -> str:
        """Rebuild text keeping Tesseract's line structure."""
        lines: dict[tuple[int, int, int], list[str]] = {}
        for i, word in enumerate(ocr_data['text']):
            if not word.strip():
                continue
            key = (ocr_data['block_num'][i], ocr_data['par_num'][i], ocr_data['line_num'][i])
            lines.setdefault(key, []).append(word)

        return "\n".join(" ".join(words) for words in lines.values())

    def _extract_lines_with_bbox(self, ocr_data: dict) -> list[dict]:
        """
        Extract words with bounding boxes (standardized format).

        Args:
            ocr_data: Tesseract output data

        Returns:
            List of words with text, confidence, and bbox
        """
        lines = []
        for i, text in enumerate(ocr_data['text']):
            if not text.strip():
                continue

            conf = float(ocr_data['conf'][i])
            lines.append({
                "text": text,
                "confidence": conf / 100.0 if conf != -1 else 0.0,
                "bbox": [
                    ocr_data['left'][i],
                    ocr_data['top'][i],
                    ocr_data['left'][i] + ocr_data['width'][i],
                    ocr_data['top'][i] + ocr_data['height'][i]
                ]
            })

        return lines

    def get_engine_name(self) -> str:
        """Return engine name."""
        return "tesseract"

    async def health_check(self) -> bool:
        """Check if Tesseract is installed and accessible."""
        try:
            version = await asyncio.to_thread(pytesseract.get_tesseract_version)
            logger.info(f"Tesseract health check passed (version {version})")
            return True
        except Exception as e:
            logger.error("Tesseract health check failed", extra={"error": str(e)})
            return False

    async def close(self) -> None:
        """Shut down the worker pool. Safe to call repeatedly."""
        executor, self._executor = self._executor, None
        if executor is None:
            return
        await asyncio.to_thread(executor.shutdown, True)
        logger.info("Tesseract worker pool shut down")
