from labreport.config.settings import Settings
from labreport.ocr.base import BaseLocalOcrEngine
from labreport.ocr.pdf_text_adapter import PdfPlumberEngine, PyMuPdfEngine
from labreport.ocr.tesseract_adapter import TesseractEngine


class LocalEngineFactory:
    """Creates the on-device OCR engine selected in settings."""

    ENGINES: dict[str, type[BaseLocalOcrEngine]] = {
        "tesseract": TesseractEngine,
        "pdfplumber": PdfPlumberEngine,
        "pymupdf": PyMuPdfEngine,
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseLocalOcrEngine:
        engine = settings.local_ocr_engine.lower()
        engine_cls = cls.ENGINES.get(engine)
        if engine_cls is None:
            raise ValueError(
                f"Unknown local OCR engine '{engine}'. Choose from: {list(cls.ENGINES)}"
            )
        if engine_cls is TesseractEngine:
            return TesseractEngine(tesseract_cmd=settings.tesseract_cmd)
        return engine_cls()
