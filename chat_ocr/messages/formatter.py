"""
Message content builders: turn processed attachments into transcript parts.

Pure functions. A failed or pending OCR never drops the attachment: the
original content is embedded with a marker instead.
"""

from typing import Any, Iterable

from chat_ocr.models.attachment import FileAttachment, ProcessedAttachment

ContentPart = dict[str, Any]


def build_content_with_ocr(attachment: FileAttachment) -> ContentPart:
    """
    Build the message part for one attachment.

    Args:
        attachment: Attachment, processed or not

    Returns:
        {"type": "image", "image": ...} or {"type": "text", "text": ...}
    """
    if attachment.is_image:
        return {"type": "image", "image": attachment.text_payload()}

    if not attachment.is_pdf:
        return {"type": "text", "text": f"[File: {attachment.name}]\n{attachment.text_payload()}"}

    header = f"[PDF: {attachment.name}]"
    if not isinstance(attachment, ProcessedAttachment):
        return {"type": "text", "text": f"{header}\n{attachment.text_payload()}"}

    if attachment.extracted_text:
        annotation = ""
        if attachment.ocr_method:
            confidence = round(attachment.ocr_confidence or 0)
            annotation = f"\n[OCR: {attachment.ocr_method}, Confidence: {confidence}%]"
        return {"type": "text", "text": f"{header}{annotation}\n\n{attachment.extracted_text}"}

    if attachment.ocr_error:
        return {
            "type": "text",
            "text": f"{header}\n[OCR error: {attachment.ocr_error}]\n\n{attachment.text_payload()}"
        }

    if attachment.is_processing:
        return {
            "type": "text",
            "text": f"{header}\n[OCR in progress...]\n\n{attachment.text_payload()}"
        }

    return {"type": "text", "text": f"{header}\n{attachment.text_payload()}"}


def _user_content(query: str, attachments: Iterable[FileAttachment] | None) -> str | list[ContentPart]:
    attachments = list(attachments or [])
    if not attachments:
        return query or ""
    return [{"type": "text", "text": query or ""}] + [
        build_content_with_ocr(attachment) for attachment in attachments
    ]


def build_core_messages(
    history: Iterable[dict[str, Any]],
    query: str,
    attachments: Iterable[FileAttachment] | None = None
) -> list[dict[str, Any]]:
    """
    Build the model transcript from prior turns plus the new user query.

    Args:
        history: Prior turns, each {"query", "answer", "attachments"}
        query: New user message
        attachments: Attachments of the new message

    Returns:
        List of {"role", "content"} messages

    Example:
        >>> build_core_messages([{"query": "Hi", "answer": "Hello"}], "Next")
        [{'role': 'user', 'content': 'Hi'}, {'role': 'assistant', 'content': 'Hello'}, {'role': 'user', 'content': 'Next'}]
    """
    messages = []
    for turn in history or []:
        messages.append({
            "role": "user",
            "content": _user_content(turn.get("query", ""), turn.get("attachments"))
        })
        messages.append({"role": "assistant", "content": turn.get("answer") or ""})

    messages.append({"role": "user", "content": _user_content(query, attachments)})
    return messages
