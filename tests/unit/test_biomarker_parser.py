import pytest

from labreport.biomarkers.models import BiomarkerStatus, ExtractionMethod, HealthCategory
from labreport.biomarkers.parser import (
    TextBiomarkerParser,
    classify_status,
    parse_reference_range,
)


def _by_name(text: str) -> dict:
    return {b.name: b for b in TextBiomarkerParser().parse(text)}


class TestParse:
    def test_reads_value_unit_and_range(self) -> None:
        glucose = _by_name("Glucose: 105 mg/dL 70-99")["Glucose"]

        assert glucose.value == "105"
        assert glucose.numeric_value == 105.0
        assert glucose.unit == "mg/dL"
        assert glucose.reference_range == "70-99"
        assert glucose.status is BiomarkerStatus.HIGH
        assert glucose.category is HealthCategory.METABOLIC

    def test_exact_name_confidence(self) -> None:
        assert _by_name("Hemoglobin 14.2 g/dL")["Hemoglobin"].confidence == 0.9

    def test_alias_confidence(self) -> None:
        wbc = _by_name("WBC 6.1 K/uL 4.0-11.0")["White Blood Cells"]
        assert wbc.confidence == 0.8
        assert wbc.status is BiomarkerStatus.NORMAL

    def test_fuzzy_match_for_ocr_typos(self) -> None:
        found = _by_name("Glucse 88 mg/dL")
        assert found["Glucose"].confidence == 0.7

    def test_longest_term_wins(self) -> None:
        found = _by_name("LDL Cholesterol: 130 mg/dL <100")
        assert "LDL Cholesterol" in found
        assert "Total Cholesterol" not in found
        assert found["LDL Cholesterol"].status is BiomarkerStatus.HIGH

    def test_one_biomarker_per_line(self, lab_report_text: str) -> None:
        found = _by_name(lab_report_text)
        assert set(found) == {"Glucose", "Hemoglobin", "TSH"}

    def test_unknown_unit_is_dropped(self) -> None:
        glucose = _by_name("Glucose 5.4 widgets")["Glucose"]
        assert glucose.unit is None

    def test_comparator_value_is_not_numeric(self) -> None:
        crp = _by_name("CRP <0.5 mg/L")["C-Reactive Protein"]
        assert crp.value == "<0.5"
        assert crp.numeric_value is None
        assert crp.status is BiomarkerStatus.UNKNOWN

    def test_thousands_separator(self) -> None:
        platelets = _by_name("Platelets 250,000")["Platelets"]
        assert platelets.numeric_value == 250000.0

    def test_name_without_value_is_skipped(self) -> None:
        assert _by_name("Glucose: see attached") == {}

    def test_stamps_requested_method(self) -> None:
        found = TextBiomarkerParser().parse("TSH 2.0", ExtractionMethod.OCR_REMOTE)
        assert found[0].method is ExtractionMethod.OCR_REMOTE

    def test_duplicate_keeps_highest_confidence(self) -> None:
        found = TextBiomarkerParser().parse("hgb 13.0\nHemoglobin 14.0")
        assert len(found) == 1
        assert found[0].value == "14.0"


class TestReferenceRanges:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("70-99", (70.0, 99.0)),
            ("(3.5 - 5.0)", (3.5, 5.0)),
            ("<200", (None, 200.0)),
            (">40", (40.0, None)),
            ("negative", None),
        ],
    )
    def test_parse_reference_range(self, text: str, expected: tuple | None) -> None:
        assert parse_reference_range(text) == expected

    def test_classify_low(self) -> None:
        assert classify_status(12.0, "13.5-17.5") is BiomarkerStatus.LOW

    def test_classify_without_range(self) -> None:
        assert classify_status(12.0, None) is BiomarkerStatus.UNKNOWN


class TestFuzzyMatching:
    def test_two_typos_still_match(self) -> None:
        assert _by_name("Glucse 88 mg/dL")["Glucose"].value == "88"
        assert "Hemoglobin" in _by_name("Hemogobin 14.1 g/dL")

    def test_three_typos_do_not_match(self) -> None:
        assert "Glucose" not in _by_name("Gxxxose 88 mg/dL")

    def test_short_tokens_are_not_fuzzy_matched(self) -> None:
        assert _by_name("Gluc 88 mg/dL") == {}
