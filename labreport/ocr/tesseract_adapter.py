import io

import pymupdf
import pytesseract
from PIL import Image, UnidentifiedImageError

from labreport.ocr.base import BaseLocalOcrEngine
from labreport.ocr.exceptions import LocalOcrError, OcrEngineUnavailableError
from labreport.ocr.models import LocalOcrConfig, LocalOcrOutput

_PAGE_SEGMENTATION = "--psm 6"


class TesseractEngine(BaseLocalOcrEngine):
    """On-device OCR with Tesseract. PDF pages are rasterised with PyMuPDF first."""

    name = "tesseract"

    def __init__(self, tesseract_cmd: str = "") -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def extract(self, image_bytes: bytes, config: LocalOcrConfig) -> LocalOcrOutput:
        try:
            images = self._load_images(image_bytes, config)
            texts: list[str] = []
            confidences: list[float] = []
            for image in images:
                data = pytesseract.image_to_data(
                    image,
                    lang=config.language,
                    config=_PAGE_SEGMENTATION,
                    output_type=pytesseract.Output.DICT,
                )
                confidences.extend(_word_confidences(data))
                texts.append(_join_lines(data))
        except pytesseract.TesseractNotFoundError as exc:
            raise OcrEngineUnavailableError("Tesseract binary is not installed") from exc
        except LocalOcrError:
            raise
        except Exception as exc:
            raise LocalOcrError(f"tesseract extraction failed: {exc}") from exc

        confidence = sum(confidences) / len(confidences) / 100.0 if confidences else 0.0
        return LocalOcrOutput(
            text="\n".join(texts).strip(),
            confidence=min(1.0, max(0.0, confidence)),
            page_count=len(images),
        )

    @staticmethod
    def _load_images(image_bytes: bytes, config: LocalOcrConfig) -> list[Image.Image]:
        if config.mime_type == "application/pdf":
            images = []
            with pymupdf.open(stream=image_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                for page in doc:
                    pixmap = page.get_pixmap(dpi=config.dpi)
                    images.append(Image.open(io.BytesIO(pixmap.tobytes("png"))))
            return images
        try:
            return [Image.open(io.BytesIO(image_bytes))]
        except UnidentifiedImageError as exc:
            raise LocalOcrError(f"Cannot decode image of type {config.mime_type}") from exc


def _word_confidences(data: dict[str, list[object]]) -> list[float]:
    confidences = []
    for text, conf in zip(data["text"], data["conf"]):
        value = float(str(conf))
        if value >= 0 and str(text).strip():
            confidences.append(value)
    return confidences


def _join_lines(data: dict[str, list[object]]) -> str:
    lines: dict[tuple[object, object, object], list[str]] = {}
    for i, word in enumerate(data["text"]):
        word = str(word).strip()
        if not word:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)
    return "\n".join(" ".join(words) for words in lines.values())
