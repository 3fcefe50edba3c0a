"""
OCR Factory - builds an OCRManager and its collaborators from settings.

No engine or manager is cached here: the application builds one manager at
startup (see chat_ocr.main) and passes it around explicitly.

Usage:
    from chat_ocr.ocr.ocr_factory import OCRFactory

    manager = OCRFactory.create_manager()
    result = await manager.process_document(attachment)
"""

from chat_ocr.config import OCRConfig, Settings, settings as default_settings
from chat_ocr.logger import get_logger
from chat_ocr.ocr.base_ocr import BaseOCR
from chat_ocr.ocr.ocr_manager import OCRManager
from chat_ocr.quota.quota_tracker import QuotaTracker
from chat_ocr.quota.stores import InMemoryQuotaStore, QuotaStore

logger = get_logger(__name__)


class OCRFactory:
    """
    Creates OCR engines, the quota tracker and the manager from Settings.

    Engine selection:
        - google_vision (primary): only if GOOGLE_VISION_API_KEY is set and
          GOOGLE_VISION_ENABLED is true. A missing key is not an error.
        - tesseract (fallback): unless OCR_FALLBACK_ENABLED=false
    """

    @classmethod
    def create_manager(cls, settings: Settings | None = None) -> OCRManager:
        """
        Build a fully wired OCRManager.

        Args:
            settings: Settings to use (defaults to the environment)

        Returns:
            OCRManager instance
        """
        settings = settings or default_settings
        config = OCRConfig.from_settings(settings)

        manager = OCRManager(
            config=config,
            primary=cls.create_primary(settings),
            fallback=cls.create_fallback(settings),
            quota_tracker=QuotaTracker(
                monthly_limit=config.monthly_quota,
                store=cls.create_quota_store(settings),
                scope=settings.quota_scope
            )
        )

        logger.info("OCR manager created", extra={
            "quota_store": settings.quota_store,
            "quota_scope": settings.quota_scope
        })
        return manager

    @classmethod
    def create_primary(cls, settings: Settings) -> BaseOCR | None:
        """
        Create Google Vision OCR instance, or None when disabled/unconfigured.
        """
        if not settings.google_vision_enabled:
            logger.info("OCR engine 'google_vision' is disabled (feature flag)")
            return None

        if not settings.has_google_vision_key:
            logger.warning(
                "GOOGLE_VISION_API_KEY not configured, all OCR will use the fallback engine"
            )
            return None

        from chat_ocr.ocr.google_vision_ocr import GoogleVisionOCR

        return GoogleVisionOCR(
            api_key=settings.google_vision_api_key,
            endpoint=settings.google_vision_endpoint,
            timeout_seconds=settings.ocr_backend_timeout_seconds
        )

    @classmethod
    def create_fallback(cls, settings: Settings) -> BaseOCR | None:
        """
        Create Tesseract OCR instance, or None when fallback is disabled.
        """
        if not settings.ocr_fallback_enabled:
            logger.info("OCR engine 'tesseract' is disabled (feature flag)")
            return None

        from chat_ocr.ocr.pdf_extractor import PDFExtractor
        from chat_ocr.ocr.tesseract_ocr import TesseractOCR

        return TesseractOCR(
            tesseract_cmd=settings.tesseract_cmd,
            languages=settings.tesseract_languages,
            max_workers=settings.ocr_batch_concurrency,
            pdf_extractor=PDFExtractor(
                max_pages=settings.pdf_max_pages,
                resolution=settings.pdf_render_dpi
            )
        )

    @classmethod
    def create_quota_store(cls, settings: Settings) -> QuotaStore:
        """
        Create the quota persistence backend.

        Raises:
            ValueError: If QUOTA_STORE=supabase but Supabase is not configured
        """
        if settings.quota_store == "supabase":
            from chat_ocr.quota.stores import SupabaseQuotaStore
            return SupabaseQuotaStore()

        if settings.is_production:
            logger.warning(
                "In-memory OCR quota store in production: usage is per-process "
                "and lost on restart. Set QUOTA_STORE=supabase"
            )
        return InMemoryQuotaStore()
