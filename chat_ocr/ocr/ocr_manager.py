"""
OCR Manager - chooses a backend per document, runs it, falls back, and
keeps the primary backend's monthly quota up to date.

Per document:
    validate -> choose strategy -> primary (+1 quota on success)
                                   | on failure -> fallback
                                -> fallback directly
                                -> no backend: failed result

Usage:
    manager = OCRManager(config, primary=GoogleVisionOCR(key), fallback=TesseractOCR())
    result = await manager.process_document(attachment)
    results = await manager.process_documents(attachments)
    await manager.cleanup()
"""

import asyncio
import time
from typing import Iterable

from chat_ocr.config import OCRConfig
from chat_ocr.logger import get_logger
from chat_ocr.models.attachment import FileAttachment
from chat_ocr.models.common import ServiceAvailability, ServicesStatus
from chat_ocr.models.ocr import (
    FALLBACK_METHOD,
    PRIMARY_METHOD,
    OCRMethod,
    OCRResult,
    QuotaStatus,
    QuotaUsage,
)
from chat_ocr.ocr.base_ocr import BaseOCR, OCRBackendError, RawOCRResult
from chat_ocr.ocr.result_normalizer import failed_result, normalize_result
from chat_ocr.quota.quota_tracker import QuotaTracker

logger = get_logger(__name__)


def format_file_size(size: int) -> str:
    """
    Human-readable file size.

    Example:
        >>> format_file_size(10 * 1024 * 1024)
        '10 MB'
    """
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {units[unit]}"


def _elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)


class OCRManager:
    """
    Orchestrates primary (quota-limited) and fallback OCR backends.

    Construct once at process start and share the instance; it holds the
    fallback engine's worker pool, released by cleanup().

    Public methods never raise for OCR failures: every outcome is an
    OCRResult whose `error` is set when extraction failed.
    """

    def __init__(
        self,
        config: OCRConfig,
        primary: BaseOCR | None = None,
        fallback: BaseOCR | None = None,
        quota_tracker: QuotaTracker | None = None
    ):
        self.config = config
        self.primary = primary
        self.fallback = fallback
        self.quota_tracker = quota_tracker or QuotaTracker(monthly_limit=config.monthly_quota)

        logger.info("OCR manager initialized", extra={
            "primary": primary.get_engine_name() if primary else None,
            "fallback": fallback.get_engine_name() if fallback else None,
            "google_vision_enabled": config.google_vision_enabled,
            "fallback_enabled": config.fallback_enabled,
            "monthly_quota": config.monthly_quota
        })

    async def __aenter__(self) -> "OCRManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cleanup()

    # =========================================================================
    # Validation & strategy
    # =========================================================================

    def is_supported(self, attachment: FileAttachment) -> bool:
        """PDFs always; images unless the strict PDF-only policy is set."""
        return attachment.is_pdf or (self.config.accept_images and attachment.is_image)

    def validate(self, attachment: FileAttachment) -> str | None:
        """
        Check an attachment before any backend is invoked.

        Returns:
            Error message, or None if the attachment can be processed
        """
        if attachment.size > self.config.max_file_size:
            return (
                f"File too large: {format_file_size(attachment.size)} "
                f"(max: {format_file_size(self.config.max_file_size)})"
            )
        if not self.is_supported(attachment):
            return f"Unsupported document type: {attachment.type or 'unknown'}"
        return None

    def _primary_usable(self) -> bool:
        return (
            self.primary is not None
            and self.config.google_vision_enabled
            and self.primary.is_available()
        )

    def _fallback_usable(self) -> bool:
        return self.fallback is not None and self.config.fallback_enabled

    async def determine_strategy(self) -> OCRMethod | None:
        """
        Choose the backend for the next document. Reads quota, writes nothing.

        Returns:
            PRIMARY_METHOD, FALLBACK_METHOD, or None if neither can be used
        """
        if self._primary_usable():
            if await self.quota_tracker.should_use_primary():
                return PRIMARY_METHOD
            logger.info("Google Vision quota buffer reached, routing to fallback")

        if self._fallback_usable():
            return FALLBACK_METHOD

        return None

    def _no_backend_reason(self) -> str:
        if not self._primary_usable():
            primary_reason = "primary backend not configured"
        else:
            primary_reason = "primary backend quota exhausted"
        return f"No OCR backend available: {primary_reason} and fallback disabled"

    # =========================================================================
    # Processing
    # =========================================================================

    async def process_document(self, attachment: FileAttachment) -> OCRResult:
        """
        Extract text from one attachment.

        Args:
            attachment: Uploaded PDF or image

        Returns:
            OCRResult; `error` is set iff extraction failed
        """
        start_time = time.time()
        logger.info("Starting OCR", extra={
            "attachment_id": attachment.id,
            "file_name": attachment.name,
            "mime_type": attachment.type,
            "size": attachment.size
        })

        validation_error = self.validate(attachment)
        if validation_error:
            logger.warning("Attachment rejected", extra={
                "attachment_id": attachment.id,
                "error": validation_error
            })
            return failed_result(validation_error, FALLBACK_METHOD)

        strategy = await self.determine_strategy()
        if strategy is None:
            reason = self._no_backend_reason()
            logger.error("No OCR backend available", extra={
                "attachment_id": attachment.id,
                "reason": reason
            })
            return failed_result(reason, FALLBACK_METHOD)

        logger.info("OCR strategy selected", extra={
            "attachment_id": attachment.id,
            "strategy": strategy
        })

        try:
            outcome = await asyncio.wait_for(
                self._run_strategy(attachment, strategy, start_time),
                timeout=self.config.document_timeout_seconds
            )
        except asyncio.TimeoutError:
            result = failed_result(
                f"OCR timed out after {self.config.document_timeout_seconds:g}s",
                strategy,
                _elapsed_ms(start_time)
            )
        except Exception as e:
            logger.error("Unexpected OCR failure", extra={
                "attachment_id": attachment.id,
                "error": str(e)
            }, exc_info=True)
            result = failed_result(
                f"Failed to process {attachment.name}: {e}",
                strategy,
                _elapsed_ms(start_time)
            )
        else:
            result = await self._complete(outcome, start_time)

        logger.info("OCR completed", extra={
            "attachment_id": attachment.id,
            "method": result.method,
            "confidence": result.confidence,
            "processing_time_ms": result.processing_time_ms,
            "error": result.error
        })

        return result

    async def _run_strategy(
        self,
        attachment: FileAttachment,
        strategy: OCRMethod,
        start_time: float
    ) -> OCRResult | tuple[RawOCRResult, OCRMethod]:
        """
        Run the backends under the document deadline.

        Returns:
            Failed OCRResult, or the engine result paired with the method
            whose text it is. Quota is recorded by _complete, outside the
            deadline.
        """
        if strategy == FALLBACK_METHOD:
            try:
                raw = await self._call_backend(self.fallback, attachment)
            except OCRBackendError as e:
                return failed_result(str(e), FALLBACK_METHOD, _elapsed_ms(start_time))
            return raw, FALLBACK_METHOD

        try:
            raw = await self._call_backend(self.primary, attachment)
        except OCRBackendError as primary_error:
            logger.warning("Primary OCR failed", extra={
                "attachment_id": attachment.id,
                "error": str(primary_error),
                "fallback_enabled": self._fallback_usable()
            })
            if not self._fallback_usable():
                return failed_result(str(primary_error), PRIMARY_METHOD, _elapsed_ms(start_time))

            try:
                raw = await self._call_backend(self.fallback, attachment)
            except OCRBackendError as fallback_error:
                return failed_result(
                    f"Both OCR backends failed. {primary_error}; {fallback_error}",
                    FALLBACK_METHOD,
                    _elapsed_ms(start_time)
                )
            # Method reflects the engine whose text is returned
            return raw, FALLBACK_METHOD

        return raw, PRIMARY_METHOD

    async def _complete(
        self,
        outcome: OCRResult | tuple[RawOCRResult, OCRMethod],
        start_time: float
    ) -> OCRResult:
        if isinstance(outcome, OCRResult):
            return outcome

        raw, method = outcome
        if method == PRIMARY_METHOD:
            await self.quota_tracker.record_usage(1)
        return self._finish(raw, method, start_time)

    async def _call_backend(self, backend: BaseOCR, attachment: FileAttachment) -> RawOCRResult:
        """
        Run one backend with the per-call timeout.

        Raises:
            OCRBackendError: On any backend failure, including timeout
        """
        engine = backend.get_engine_name()
        try:
            return await asyncio.wait_for(
                backend.extract_from_document(attachment),
                timeout=self.config.backend_timeout_seconds
            )
        except OCRBackendError:
            raise
        except asyncio.TimeoutError as e:
            raise OCRBackendError(
                engine, f"timed out after {self.config.backend_timeout_seconds:g}s"
            ) from e
        except Exception as e:
            raise OCRBackendError(engine, str(e) or type(e).__name__) from e

    def _finish(self, raw: RawOCRResult, method: OCRMethod, start_time: float) -> OCRResult:
        result = normalize_result(raw, method)
        return result.model_copy(update={"processing_time_ms": _elapsed_ms(start_time)})

    async def process_documents(self, attachments: Iterable[FileAttachment]) -> dict[str, OCRResult]:
        """
        Process a batch with bounded concurrency.

        Unsupported document types are skipped. Chunks of
        `batch_concurrency` run one after another; documents inside a chunk
        run concurrently. One failing document never fails the batch.

        Returns:
            Mapping of attachment id to OCRResult
        """
        supported = [a for a in attachments if self.is_supported(a)]
        size = self.config.batch_concurrency
        results: dict[str, OCRResult] = {}

        logger.info("Starting OCR batch", extra={
            "documents": len(supported),
            "concurrency": size
        })

        for offset in range(0, len(supported), size):
            chunk = supported[offset:offset + size]
            outcomes = await asyncio.gather(
                *(self.process_document(attachment) for attachment in chunk),
                return_exceptions=True
            )

            for attachment, outcome in zip(chunk, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.error("OCR batch item failed", extra={
                        "attachment_id": attachment.id,
                        "error": str(outcome)
                    })
                    outcome = failed_result(
                        f"Failed to process {attachment.name}: {outcome}",
                        FALLBACK_METHOD
                    )
                results[attachment.id] = outcome

        return results

    # =========================================================================
    # Quota & services
    # =========================================================================

    async def get_quota_status(self) -> QuotaStatus:
        return await self.quota_tracker.get_quota_status()

    async def get_quota_usage(self) -> QuotaUsage:
        return await self.quota_tracker.get_current_usage()

    async def reset_quota(self) -> QuotaUsage:
        return await self.quota_tracker.reset_quota()

    async def test_services(self) -> ServicesStatus:
        """
        Probe both backends.

        A successful Google Vision probe is a billed request and counts
        against the monthly quota.
        """
        google_vision = await self._probe(self.primary)
        if google_vision.available:
            await self.quota_tracker.record_usage(1)

        return ServicesStatus(
            google_vision=google_vision,
            tesseract=await self._probe(self.fallback)
        )

    async def _probe(self, backend: BaseOCR | None) -> ServiceAvailability:
        if backend is None:
            return ServiceAvailability(available=False, error="not configured")
        try:
            return ServiceAvailability(available=await backend.health_check())
        except Exception as e:
            return ServiceAvailability(available=False, error=str(e) or type(e).__name__)

    async def cleanup(self) -> None:
        """Release backend resources. Safe to call more than once."""
        for backend in (self.primary, self.fallback):
            if backend is None:
                continue
            try:
                await backend.close()
            except Exception as e:
                logger.error("Failed to release OCR backend", extra={
                    "engine": backend.get_engine_name(),
                    "error": str(e)
                })
