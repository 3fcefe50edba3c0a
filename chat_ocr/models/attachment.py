"""
Attachment models exchanged with the chat layer.
"""

import base64
import re
from typing import Literal

from pydantic import BaseModel, Field


_DATA_URL_PREFIX = re.compile(r"^data:[^;,]*;base64,")


class FileAttachment(BaseModel):
    """
    Document uploaded alongside a chat message.

    Immutable input: the OCR layer only ever reads it.
    `data` is base64 (optionally a data URL) or raw bytes.
    """

    model_config = {"frozen": True}

    id: str = Field(..., description="Caller-assigned unique id")
    name: str
    type: str = Field(..., description="MIME type")
    data: str | bytes = Field(..., description="Base64 content or raw bytes")
    size: int = Field(..., ge=0, description="Size in bytes")

    @property
    def is_pdf(self) -> bool:
        return self.type == "application/pdf" or self.name.lower().endswith(".pdf")

    @property
    def is_image(self) -> bool:
        return self.type.startswith("image/")

    def content_bytes(self) -> bytes:
        """
        Decode the attachment payload.

        Returns:
            Raw document bytes

        Raises:
            ValueError: If the payload is not valid base64
        """
        if isinstance(self.data, bytes):
            return self.data

        payload = _DATA_URL_PREFIX.sub("", self.data.strip())
        try:
            return base64.b64decode(payload, validate=True)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid base64 content for {self.name}: {e}") from e

    def text_payload(self) -> str:
        """Original content as text, used when OCR produced nothing."""
        if isinstance(self.data, bytes):
            return base64.b64encode(self.data).decode("utf-8")
        return self.data


class ProcessedAttachment(FileAttachment):
    """FileAttachment augmented with the outcome of OCR."""

    extracted_text: str | None = None
    ocr_method: Literal["google-vision", "tesseract"] | None = None
    ocr_confidence: float | None = None
    ocr_error: str | None = None
    is_processing: bool = False
