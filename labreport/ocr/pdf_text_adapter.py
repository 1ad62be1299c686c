import io

import pdfplumber
import pymupdf

from labreport.ocr.base import BaseLocalOcrEngine
from labreport.ocr.exceptions import LocalOcrError, UnsupportedInputError
from labreport.ocr.models import LocalOcrConfig, LocalOcrOutput

# Text-layer extraction is exact where a page has text; scanned pages contribute nothing.
TEXT_LAYER_CONFIDENCE = 0.95


def _text_layer_output(pages: list[str]) -> LocalOcrOutput:
    if not pages:
        return LocalOcrOutput(text="", confidence=0.0, page_count=0)
    with_text = sum(1 for page in pages if page.strip())
    return LocalOcrOutput(
        text="\n".join(pages).strip(),
        confidence=TEXT_LAYER_CONFIDENCE * with_text / len(pages),
        page_count=len(pages),
    )


def _require_pdf(engine: str, config: LocalOcrConfig) -> None:
    if config.mime_type != "application/pdf":
        raise UnsupportedInputError(f"{engine} reads PDF text layers only, got {config.mime_type}")


class PdfPlumberEngine(BaseLocalOcrEngine):
    """Reads the embedded text layer of a PDF using pdfplumber."""

    name = "pdfplumber"

    def extract(self, image_bytes: bytes, config: LocalOcrConfig) -> LocalOcrOutput:
        _require_pdf(self.name, config)
        try:
            with pdfplumber.open(io.BytesIO(image_bytes)) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
        except Exception as exc:
            raise LocalOcrError(f"pdfplumber extraction failed: {exc}") from exc
        return _text_layer_output(pages)


class PyMuPdfEngine(BaseLocalOcrEngine):
    """Reads the embedded text layer of a PDF using PyMuPDF."""

    name = "pymupdf"

    def extract(self, image_bytes: bytes, config: LocalOcrConfig) -> LocalOcrOutput:
        _require_pdf(self.name, config)
        try:
            with pymupdf.open(stream=image_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                pages = [page.get_text() for page in doc]
        except Exception as exc:
            raise LocalOcrError(f"pymupdf extraction failed: {exc}") from exc
        return _text_layer_output(pages)
