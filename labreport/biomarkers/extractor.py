from dataclasses import replace

from labreport.biomarkers.models import (
    REMOTE_ANALYSIS_CONFIDENCE,
    BiomarkerStatus,
    ExtractedBiomarker,
    ExtractionMethod,
    HealthCategory,
)
from labreport.biomarkers.parser import TextBiomarkerParser
from labreport.logging.logger import Log
from labreport.remote.models import AnalysisBiomarker, AnalysisPayload
from labreport.routing.models import OCRMethod, OCRResult

_METHOD_FOR_OCR = {
    OCRMethod.REMOTE: ExtractionMethod.OCR_REMOTE,
    OCRMethod.LOCAL: ExtractionMethod.OCR_LOCAL,
}


class BiomarkerExtractor:
    """Converts OCR results and remote analyses into biomarker records."""

    def __init__(self, parser: TextBiomarkerParser | None = None) -> None:
        self._parser = parser or TextBiomarkerParser()

    def parse_text(self, text: str, method: ExtractionMethod) -> list[ExtractedBiomarker]:
        return self._parser.parse(text, method)

    def extract_from_ocr(self, result: OCRResult) -> list[ExtractedBiomarker]:
        """Map an OCR result's biomarkers, stamping the method that produced them.

        Records already corrected by the user keep their manual method.
        """
        method = _METHOD_FOR_OCR[result.method]
        return [
            b if b.method is ExtractionMethod.MANUAL or b.method is method else replace(b, method=method)
            for b in result.biomarkers
        ]

    def extract_from_analysis(self, payload: AnalysisPayload) -> list[ExtractedBiomarker]:
        biomarkers: list[ExtractedBiomarker] = []
        for group in payload.categories:
            category = HealthCategory.from_label(group.category)
            if category is None:
                Log.warning(f"Unknown health category '{group.category}' in remote analysis")
            biomarkers.extend(_from_analysis(item, category) for item in group.biomarkers)
        return biomarkers


def map_remote_status(raw: str) -> BiomarkerStatus:
    """Map the remote status vocabulary onto BiomarkerStatus, keeping high/low distinct."""
    key = raw.strip().lower()
    if key in {"elevated", "above_range"}:
        return BiomarkerStatus.HIGH
    if key in {"decreased", "below_range"}:
        return BiomarkerStatus.LOW
    try:
        return BiomarkerStatus(key)
    except ValueError:
        return BiomarkerStatus.UNKNOWN


def _format_value(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


def _from_analysis(item: AnalysisBiomarker, category: HealthCategory | None) -> ExtractedBiomarker:
    return ExtractedBiomarker(
        name=item.name,
        value=_format_value(item.value),
        unit=item.unit,
        reference_range=item.normal_range,
        status=map_remote_status(item.status),
        confidence=REMOTE_ANALYSIS_CONFIDENCE,
        method=ExtractionMethod.OCR_REMOTE,
        category=category,
    )
