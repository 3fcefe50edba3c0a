"""
Attachment-level OCR integration for the chat layer.

The manager returns {attachment_id: OCRResult}; this module folds that
mapping back into the attachment list the chat layer works with.
"""

from typing import Iterable, Mapping

from chat_ocr.logger import get_logger
from chat_ocr.models.attachment import FileAttachment, ProcessedAttachment
from chat_ocr.models.ocr import OCRResult
from chat_ocr.ocr.ocr_manager import OCRManager

logger = get_logger(__name__)


def _as_processed(attachment: FileAttachment, **updates) -> ProcessedAttachment:
    data = attachment.model_dump()
    data.update(updates)
    return ProcessedAttachment(**data)


def mark_processing(attachments: Iterable[FileAttachment]) -> list[ProcessedAttachment]:
    """Interim state for UIs: every PDF flagged as in flight."""
    return [
        _as_processed(attachment, is_processing=attachment.is_pdf)
        for attachment in attachments
    ]


def apply_ocr_results(
    attachments: Iterable[FileAttachment],
    results: Mapping[str, OCRResult],
    ocr_targets: set[str] | None = None
) -> list[ProcessedAttachment]:
    """
    Attach OCR outcomes to their attachments, preserving order.

    Args:
        attachments: Original attachments
        results: Manager output keyed by attachment id
        ocr_targets: Ids that were sent to OCR. A target missing from
            `results` is marked failed. Defaults to the keys of `results`.

    Returns:
        One ProcessedAttachment per input attachment
    """
    targets = set(results) if ocr_targets is None else ocr_targets
    processed = []

    for attachment in attachments:
        if attachment.id not in targets:
            processed.append(_as_processed(attachment))
            continue

        result = results.get(attachment.id)
        if result is None:
            processed.append(_as_processed(attachment, ocr_error="OCR processing failed"))
            continue

        processed.append(_as_processed(
            attachment,
            extracted_text=result.text,
            ocr_method=result.method,
            ocr_confidence=result.confidence,
            ocr_error=result.error
        ))

    return processed


async def process_file_attachments_with_ocr(
    manager: OCRManager,
    attachments: list[FileAttachment]
) -> list[ProcessedAttachment]:
    """
    Run OCR on the PDFs of a chat turn.

    Images are passed to the model as images and are not sent to OCR.
    A batch-level failure marks every PDF as failed instead of raising.

    Args:
        manager: Shared OCR manager
        attachments: Attachments of one user turn

    Returns:
        Attachments augmented with OCR fields, in input order
    """
    if not attachments:
        return []

    pdfs = [attachment for attachment in attachments if attachment.is_pdf]
    if not pdfs:
        return [_as_processed(attachment) for attachment in attachments]

    logger.info("Processing PDF attachments with OCR", extra={"count": len(pdfs)})
    pdf_ids = {pdf.id for pdf in pdfs}

    try:
        results = await manager.process_documents(pdfs)
    except Exception as e:
        logger.error("OCR batch failed", extra={"error": str(e)}, exc_info=True)
        return [
            _as_processed(attachment, ocr_error=f"OCR failed: {e}")
            if attachment.id in pdf_ids else _as_processed(attachment)
            for attachment in attachments
        ]

    return apply_ocr_results(attachments, results, ocr_targets=pdf_ids)
