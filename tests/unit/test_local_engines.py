from unittest.mock import MagicMock, patch

import pytest
import pytesseract

from labreport.ocr import tesseract_adapter
from labreport.ocr.exceptions import LocalOcrError, OcrEngineUnavailableError, UnsupportedInputError
from labreport.ocr.factory import LocalEngineFactory
from labreport.ocr.models import LocalOcrConfig, LocalOcrOutput
from labreport.ocr.pdf_text_adapter import PdfPlumberEngine, PyMuPdfEngine
from labreport.ocr.tesseract_adapter import TesseractEngine

PDF = LocalOcrConfig(mime_type="application/pdf")
PNG = LocalOcrConfig(mime_type="image/png")


def _tesseract_data() -> dict[str, list[object]]:
    return {
        "text": ["Glucose", "105", "", "TSH", "2.1"],
        "conf": ["90", "80", "-1", "70", "60"],
        "block_num": [1, 1, 1, 1, 1],
        "par_num": [1, 1, 1, 1, 1],
        "line_num": [1, 1, 1, 2, 2],
    }


@pytest.mark.parametrize("engine_cls", [PdfPlumberEngine, PyMuPdfEngine])
class TestPdfTextEngines:
    def test_extracts_text(self, engine_cls: type, sample_pdf_bytes: bytes) -> None:
        output = engine_cls().extract(sample_pdf_bytes, PDF)

        assert "Glucose: 105 mg/dL" in output.text
        assert output.confidence == pytest.approx(0.95)
        assert output.page_count == 1

    def test_blank_pages_lower_confidence(self, engine_cls: type, multi_page_pdf_bytes: bytes) -> None:
        output = engine_cls().extract(multi_page_pdf_bytes, PDF)

        assert output.page_count == 2
        assert output.confidence == pytest.approx(0.475)

    def test_empty_pdf_has_zero_confidence(self, engine_cls: type, empty_pdf_bytes: bytes) -> None:
        output = engine_cls().extract(empty_pdf_bytes, PDF)

        assert output.text == ""
        assert output.confidence == 0.0

    def test_invalid_bytes_raise(self, engine_cls: type) -> None:
        with pytest.raises(LocalOcrError):
            engine_cls().extract(b"not a pdf", PDF)

    def test_images_are_unsupported(self, engine_cls: type, png_bytes: bytes) -> None:
        with pytest.raises(UnsupportedInputError):
            engine_cls().extract(png_bytes, PNG)


class TestTesseractEngine:
    def test_joins_lines_and_averages_confidence(self, png_bytes: bytes) -> None:
        with patch.object(
            tesseract_adapter.pytesseract, "image_to_data", return_value=_tesseract_data()
        ) as mock_ocr:
            output = TesseractEngine().extract(png_bytes, PNG)

        assert output.text == "Glucose 105\nTSH 2.1"
        assert output.confidence == pytest.approx(0.75)
        assert mock_ocr.call_args.kwargs["lang"] == "eng"

    def test_rasterises_each_pdf_page(self, multi_page_pdf_bytes: bytes) -> None:
        with patch.object(
            tesseract_adapter.pytesseract, "image_to_data", return_value=_tesseract_data()
        ) as mock_ocr:
            output = TesseractEngine().extract(multi_page_pdf_bytes, PDF)

        assert mock_ocr.call_count == 2
        assert output.page_count == 2

    def test_missing_binary_is_unavailable(self, png_bytes: bytes) -> None:
        with patch.object(
            tesseract_adapter.pytesseract,
            "image_to_data",
            side_effect=pytesseract.TesseractNotFoundError(),
        ):
            with pytest.raises(OcrEngineUnavailableError):
                TesseractEngine().extract(png_bytes, PNG)

    def test_undecodable_image_raises(self) -> None:
        with pytest.raises(LocalOcrError, match="Cannot decode"):
            TesseractEngine().extract(b"\x00\x01garbage", PNG)


class TestLocalEngineFactory:
    def test_creates_configured_engine(self) -> None:
        settings = MagicMock(local_ocr_engine="PyMuPDF")
        assert isinstance(LocalEngineFactory.create(settings), PyMuPdfEngine)

    def test_creates_tesseract_with_command(self) -> None:
        settings = MagicMock(local_ocr_engine="tesseract", tesseract_cmd="")
        assert isinstance(LocalEngineFactory.create(settings), TesseractEngine)

    def test_unknown_engine_raises(self) -> None:
        settings = MagicMock(local_ocr_engine="abbyy")
        with pytest.raises(ValueError, match="abbyy"):
            LocalEngineFactory.create(settings)


class TestLocalOcrOutput:
    def test_rejects_confidence_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            LocalOcrOutput(text="x", confidence=1.5)
