"""
Tests for the Tesseract fallback backend.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from chat_ocr.ocr.base_ocr import OCRBackendError
from chat_ocr.ocr.tesseract_ocr import TesseractOCR


def _extractor(direct_text="", pages=None, total_pages=None):
    extractor = MagicMock()
    extractor.extract_text = AsyncMock(return_value={
        "text": direct_text,
        "page_count": total_pages or len(pages or []) or 1,
        "word_count": len(direct_text.split())
    })
    pages = pages or []
    extractor.render_pages = AsyncMock(return_value=(pages, total_pages or len(pages)))
    return extractor


def _ocr_data(words, confs):
    count = len(words)
    return {
        "text": words,
        "conf": confs,
        "block_num": [1] * count,
        "par_num": [1] * count,
        "line_num": [1 if i < 2 else 2 for i in range(count)],
        "left": [10 * i for i in range(count)],
        "top": [5] * count,
        "width": [8] * count,
        "height": [12] * count,
    }


class TestTesseractPDF:
    """Tests for PDF handling: text layer first, rendering second."""

    @pytest.mark.asyncio
    async def test_text_layer_skips_recognition(self):
        extractor = _extractor(direct_text="Quittance de loyer pour le mois de mars", total_pages=2)
        engine = TesseractOCR(pdf_extractor=extractor)

        with patch.object(engine, "_recognize_sync") as recognize:
            result = await engine.extract_text_from_pdf(b"%PDF")

        assert result.confidence == 1.0
        assert result.text == "Quittance de loyer pour le mois de mars"
        assert result.page_count == 2
        assert result.metadata["direct_text"] is True
        recognize.assert_not_called()
        extractor.render_pages.assert_not_called()

    @pytest.mark.asyncio
    async def test_thin_text_layer_renders_pages(self):
        extractor = _extractor(direct_text="12 3", pages=[b"page-1", b"page-2"], total_pages=14)
        engine = TesseractOCR(pdf_extractor=extractor)
        outputs = {
            b"page-1": ("First page", 0.8, []),
            b"page-2": ("Second page", 0.6, []),
        }

        with patch.object(engine, "_recognize_sync", side_effect=lambda data: outputs[data]):
            result = await engine.extract_text_from_pdf(b"%PDF")

        assert result.text == "--- Page 1 ---\nFirst page\n\n--- Page 2 ---\nSecond page"
        assert result.confidence == pytest.approx(0.7)
        assert result.page_count == 2
        assert result.metadata == {
            "direct_text": False,
            "pages_ocr": 2,
            "total_pages": 14,
            "truncated": True
        }
        await engine.close()

    @pytest.mark.asyncio
    async def test_broken_text_layer_still_renders(self):
        extractor = _extractor(pages=[b"page-1"])
        extractor.extract_text = AsyncMock(side_effect=ValueError("No /Root object"))
        engine = TesseractOCR(pdf_extractor=extractor)

        with patch.object(engine, "_recognize_sync", return_value=("Scanned", 0.5, [])):
            result = await engine.extract_text_from_pdf(b"%PDF")

        assert result.text == "--- Page 1 ---\nScanned"
        await engine.close()

    @pytest.mark.asyncio
    async def test_render_failure_raises_backend_error(self):
        extractor = _extractor()
        extractor.render_pages = AsyncMock(side_effect=RuntimeError("corrupt xref"))
        engine = TesseractOCR(pdf_extractor=extractor)

        with pytest.raises(OCRBackendError, match="PDF rendering failed: corrupt xref"):
            await engine.extract_text_from_pdf(b"%PDF")

    @pytest.mark.asyncio
    async def test_empty_pdf_raises_backend_error(self):
        engine = TesseractOCR(pdf_extractor=_extractor(pages=[]))

        with pytest.raises(OCRBackendError, match="no renderable pages"):
            await engine.extract_text_from_pdf(b"%PDF")


class TestTesseractRecognition:
    """Tests for single-image recognition."""

    @pytest.mark.asyncio
    async def test_image_recognition(self, sample_image_bytes):
        engine = TesseractOCR(preprocess=False)
        data = _ocr_data(["Total", "TTC", "", "42,00"], [90, 80, -1, 70])

        with patch("chat_ocr.ocr.tesseract_ocr.pytesseract.image_to_data", return_value=data) as image_to_data:
            result = await engine.extract_text_from_image(sample_image_bytes)

        assert result.text == "Total TTC\n42,00"
        assert result.confidence == pytest.approx(0.8)
        assert result.engine_used == "tesseract"
        assert [line["text"] for line in result.lines] == ["Total", "TTC", "42,00"]
        assert result.lines[0]["bbox"] == [0, 5, 8, 17]
        assert image_to_data.call_args.kwargs["lang"] == "fra+eng"
        await engine.close()

    @pytest.mark.asyncio
    async def test_no_words_gives_zero_confidence(self, sample_image_bytes):
        engine = TesseractOCR(preprocess=False)
        data = _ocr_data(["", " "], [-1, -1])

        with patch("chat_ocr.ocr.tesseract_ocr.pytesseract.image_to_data", return_value=data):
            result = await engine.extract_text_from_image(sample_image_bytes)

        assert result.text == ""
        assert result.confidence == 0.0
        await engine.close()

    @pytest.mark.asyncio
    async def test_recognition_failure_wrapped(self, sample_image_bytes):
        engine = TesseractOCR(preprocess=False)

        with patch(
            "chat_ocr.ocr.tesseract_ocr.pytesseract.image_to_data",
            side_effect=RuntimeError("tesseract is not installed")
        ):
            with pytest.raises(OCRBackendError, match="tesseract: tesseract is not installed"):
                await engine.extract_text_from_image(sample_image_bytes)

        await engine.close()


class TestTesseractLifecycle:
    """Tests for worker pool lifecycle and availability."""

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        engine = TesseractOCR()
        executor = MagicMock()
        engine._executor = executor

        await engine.close()
        await engine.close()

        executor.shutdown.assert_called_once_with(True)
        assert engine._executor is None

    @pytest.mark.asyncio
    async def test_close_without_pool(self):
        engine = TesseractOCR()

        await engine.close()

        assert engine._executor is None

    def test_executor_created_lazily(self):
        engine = TesseractOCR(max_workers=2)

        assert engine._executor is None
        executor = engine._get_executor()
        assert engine._get_executor() is executor
        assert executor._max_workers == 2
        executor.shutdown(wait=True)

    def test_unavailable_when_binary_missing(self):
        with patch("chat_ocr.ocr.tesseract_ocr.shutil.which", return_value=None):
            engine = TesseractOCR(tesseract_cmd="/nonexistent/tesseract")

        assert engine.is_available() is False

    @pytest.mark.asyncio
    async def test_health_check_failure(self):
        engine = TesseractOCR()

        with patch(
            "chat_ocr.ocr.tesseract_ocr.pytesseract.get_tesseract_version",
            side_effect=OSError("not found")
        ):
            assert await engine.health_check() is False
