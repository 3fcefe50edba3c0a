"""
Pytest configuration and fixtures.
"""

import asyncio
import base64
import io
from datetime import datetime

import pytest
from PIL import Image

from chat_ocr.config import OCRConfig
from chat_ocr.models.attachment import FileAttachment
from chat_ocr.ocr.base_ocr import BaseOCR, RawOCRResult
from chat_ocr.quota.quota_tracker import QuotaTracker
from chat_ocr.quota.stores import InMemoryQuotaStore


class FakeOCR(BaseOCR):
    """
    Scriptable OCR engine.

    Records every call, can fail for specific attachment contents, sleep to
    simulate latency, and tracks peak concurrency.
    """

    def __init__(
        self,
        name: str = "fake",
        text: str = "Invoice 2024-117 total due 1,250.00 EUR",
        confidence: float = 0.9,
        engine_used: str | None = None,
        error: Exception | None = None,
        fail_on: tuple[bytes, ...] = (),
        delay: float = 0.0,
        available: bool = True
    ):
        self.name = name
        self.text = text
        self.confidence = confidence
        self.engine_used = engine_used or name
        self.error = error
        self.fail_on = fail_on
        self.delay = delay
        self.available = available
        self.calls: list[tuple[str, bytes]] = []
        self.close_calls = 0
        self.active = 0
        self.max_active = 0

    async def _run(self, kind: str, content: bytes) -> RawOCRResult:
        self.calls.append((kind, content))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if content in self.fail_on:
                raise RuntimeError(f"{self.name} cannot read this document")
            return RawOCRResult(
                text=self.text,
                confidence=self.confidence,
                processing_time_ms=5,
                engine_used=self.engine_used
            )
        finally:
            self.active -= 1

    async def extract_text_from_pdf(self, pdf_bytes: bytes) -> RawOCRResult:
        return await self._run("pdf", pdf_bytes)

    async def extract_text_from_image(self, image_bytes: bytes) -> RawOCRResult:
        return await self._run("image", image_bytes)

    def is_available(self) -> bool:
        return self.available

    def get_engine_name(self) -> str:
        return self.name

    async def health_check(self) -> bool:
        return self.available

    async def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def fake_ocr():
    """FakeOCR class, instantiated per test with the desired behavior."""
    return FakeOCR


@pytest.fixture
def make_attachment():
    """Factory for FileAttachment with base64 content."""

    def _make(
        attachment_id: str = "a1",
        name: str = "document.pdf",
        mime_type: str = "application/pdf",
        content: bytes = b"%PDF-1.4 fake",
        size: int | None = None
    ) -> FileAttachment:
        return FileAttachment(
            id=attachment_id,
            name=name,
            type=mime_type,
            data=base64.b64encode(content).decode("utf-8"),
            size=len(content) if size is None else size
        )

    return _make


@pytest.fixture
def ocr_config():
    """Default OCR configuration with short timeouts for tests."""
    return OCRConfig(
        google_vision_enabled=True,
        monthly_quota=1000,
        fallback_enabled=True,
        max_file_size=10 * 1024 * 1024,
        batch_concurrency=3,
        backend_timeout_seconds=2.0,
        document_timeout_seconds=5.0
    )


@pytest.fixture
def frozen_now():
    """Fixed clock: 15 February 2024."""
    return lambda: datetime(2024, 2, 15, 12, 0, 0)


@pytest.fixture
def quota_store():
    return InMemoryQuotaStore()


@pytest.fixture
def quota_tracker(quota_store, frozen_now):
    """Tracker with a 1000/month limit on the fixed clock."""
    return QuotaTracker(monthly_limit=1000, store=quota_store, now=frozen_now)


@pytest.fixture
def sample_image_bytes():
    """Sample image file bytes."""
    img = Image.new('RGB', (100, 100), color='white')
    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


def build_text_pdf(text: str) -> bytes:
    """One-page PDF with `text` in its text layer (Helvetica, correct xref)."""
    stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /Resources << /Font << /F1 4 0 R >> >> "
        b"/MediaBox [0 0 612 792] /Contents 5 0 R >>",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
        b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n" + stream + b"\nendstream",
    ]

    pdf = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(pdf))
        pdf += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_offset = len(pdf)
    pdf += f"xref\n0 {len(objects) + 1}\n".encode()
    pdf += b"0000000000 65535 f \n"
    for offset in offsets:
        pdf += f"{offset:010d} 00000 n \n".encode()
    pdf += f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n".encode()
    pdf += f"startxref\n{xref_offset}\n%%EOF\n".encode()
    return bytes(pdf)


@pytest.fixture
def sample_pdf_bytes():
    """Sample PDF file bytes with an embedded text layer."""
    return build_text_pdf("Bordereau de livraison 4471")
