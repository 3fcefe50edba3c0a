"""
OCR routes for chat attachments and quota inspection.
Handles /api/v1/ocr*
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from chat_ocr.logger import get_logger
from chat_ocr.messages.integration import process_file_attachments_with_ocr
from chat_ocr.models.attachment import FileAttachment, ProcessedAttachment
from chat_ocr.models.common import ServicesStatus
from chat_ocr.models.ocr import QuotaStatus, QuotaUsage
from chat_ocr.ocr.ocr_manager import OCRManager

logger = get_logger(__name__)

router = APIRouter()


def get_ocr_manager(request: Request) -> OCRManager:
    """The manager built at startup (see main.lifespan)."""
    manager = getattr(request.app.state, "ocr_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error_code": "OCR_NOT_READY", "message": "OCR manager not initialized"}
        )
    return manager


@router.post("/ocr", response_model=list[ProcessedAttachment])
async def process_attachments(
    attachments: list[FileAttachment],
    manager: OCRManager = Depends(get_ocr_manager)
):
    """
    Run OCR on the PDF attachments of a chat turn.

    - **attachments**: File attachments (id, name, type, base64 data, size)

    Returns every attachment, PDFs augmented with `extracted_text`,
    `ocr_method`, `ocr_confidence` (0-100) and `ocr_error`.
    """
    return await process_file_attachments_with_ocr(manager, attachments)


@router.get("/ocr")
async def ocr_status():
    """Liveness of the OCR API."""
    return {"message": "OCR API is running"}


@router.get("/ocr/quota", response_model=QuotaStatus)
async def get_quota_status(manager: OCRManager = Depends(get_ocr_manager)):
    """Quota summary for display (percentage, green/yellow/red, message)."""
    return await manager.get_quota_status()


@router.get("/ocr/quota/usage", response_model=QuotaUsage)
async def get_quota_usage(manager: OCRManager = Depends(get_ocr_manager)):
    """Raw quota counters for programmatic checks."""
    return await manager.get_quota_usage()


@router.post("/ocr/quota/reset", response_model=QuotaUsage)
async def reset_quota(manager: OCRManager = Depends(get_ocr_manager)):
    """Zero the current month's usage (admin)."""
    logger.warning("OCR quota reset requested")
    return await manager.reset_quota()


@router.get("/ocr/services", response_model=ServicesStatus)
async def test_services(manager: OCRManager = Depends(get_ocr_manager)):
    """Probe both OCR backends. The Google Vision probe is billed."""
    return await manager.test_services()
