from labreport.biomarkers.classification import classify_document, dominant_category
from labreport.biomarkers.extractor import BiomarkerExtractor, map_remote_status
from labreport.biomarkers.models import (
    BiomarkerStatus,
    ExtractedBiomarker,
    ExtractionMethod,
    HealthCategory,
)
from labreport.remote.models import AnalysisBiomarker, AnalysisPayload, CategoryAnalysis
from labreport.routing.models import OCRMethod, OCRResult
from tests.fakes import make_analysis


class TestExtractFromAnalysis:
    def test_maps_categories_and_values(self) -> None:
        biomarkers = BiomarkerExtractor().extract_from_analysis(make_analysis())

        glucose, hemoglobin = biomarkers
        assert glucose.name == "Glucose"
        assert glucose.value == "105"
        assert glucose.category is HealthCategory.METABOLIC
        assert glucose.status is BiomarkerStatus.HIGH
        assert hemoglobin.value == "14.2"
        assert hemoglobin.category is HealthCategory.HEMATOLOGY

    def test_remote_records_are_high_confidence(self) -> None:
        biomarkers = BiomarkerExtractor().extract_from_analysis(make_analysis())

        assert all(b.confidence == 0.95 for b in biomarkers)
        assert all(b.method is ExtractionMethod.OCR_REMOTE for b in biomarkers)

    def test_unknown_category_keeps_biomarker(self) -> None:
        payload = AnalysisPayload(
            categories=(
                CategoryAnalysis(
                    "Allergy Panel", (AnalysisBiomarker("IgE", 80.0, "IU/mL", None, "normal"),)
                ),
            ),
            confidence=0.9,
        )

        (ige,) = BiomarkerExtractor().extract_from_analysis(payload)

        assert ige.category is None


class TestExtractFromOcr:
    def test_stamps_method_of_result(self) -> None:
        parsed = BiomarkerExtractor().parse_text("Glucose 90 mg/dL", ExtractionMethod.OCR_LOCAL)
        result = OCRResult(method=OCRMethod.REMOTE, confidence=0.9, biomarkers=tuple(parsed))

        (glucose,) = BiomarkerExtractor().extract_from_ocr(result)

        assert glucose.method is ExtractionMethod.OCR_REMOTE

    def test_manual_records_keep_method(self) -> None:
        manual = ExtractedBiomarker(
            name="Ferritin", value="50", confidence=1.0, method=ExtractionMethod.MANUAL
        )
        result = OCRResult(method=OCRMethod.LOCAL, confidence=0.9, biomarkers=(manual,))

        (kept,) = BiomarkerExtractor().extract_from_ocr(result)

        assert kept.method is ExtractionMethod.MANUAL


class TestRemoteStatusMapping:
    def test_keeps_direction(self) -> None:
        assert map_remote_status("elevated") is BiomarkerStatus.HIGH
        assert map_remote_status("Decreased") is BiomarkerStatus.LOW

    def test_passes_known_statuses(self) -> None:
        assert map_remote_status("critical") is BiomarkerStatus.CRITICAL
        assert map_remote_status("optimal") is BiomarkerStatus.OPTIMAL

    def test_unknown_vocabulary(self) -> None:
        assert map_remote_status("see comment") is BiomarkerStatus.UNKNOWN


class TestClassification:
    def test_classify_document(self) -> None:
        assert classify_document("COMPLETE BLOOD COUNT with differential") == "Complete Blood Count"
        assert classify_document("Total cholesterol 180") == "Lipid Panel"
        assert classify_document("Vitamin D 30") == "Lab Report"

    def test_dominant_category(self) -> None:
        biomarkers = BiomarkerExtractor().extract_from_analysis(make_analysis())
        extra = BiomarkerExtractor().parse_text("Platelets 250", ExtractionMethod.OCR_LOCAL)

        assert dominant_category([*biomarkers, *extra]) is HealthCategory.HEMATOLOGY
        assert dominant_category([]) is None

    def test_category_from_label(self) -> None:
        assert HealthCategory.from_label("Liver Function") is HealthCategory.LIVER_FUNCTION
        assert HealthCategory.from_label("kidney-function") is HealthCategory.KIDNEY_FUNCTION
        assert HealthCategory.from_label("astrology") is None
