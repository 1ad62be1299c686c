from collections import Counter
from collections.abc import Iterable

from labreport.biomarkers.models import ExtractedBiomarker, HealthCategory

DEFAULT_DOCUMENT_TYPE = "Lab Report"

_DOCUMENT_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Complete Blood Count", ("complete blood count", "cbc")),
    ("Lipid Panel", ("lipid", "cholesterol")),
    ("Comprehensive Metabolic Panel", ("metabolic", "cmp")),
    ("Thyroid Function Test", ("thyroid", "tsh")),
)


def classify_document(text: str) -> str:
    """Guess the report type from keywords in its text."""
    lowered = text.lower()
    for document_type, keywords in _DOCUMENT_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return document_type
    return DEFAULT_DOCUMENT_TYPE


def dominant_category(biomarkers: Iterable[ExtractedBiomarker]) -> HealthCategory | None:
    counts = Counter(b.category for b in biomarkers if b.category is not None)
    if not counts:
        return None
    return counts.most_common(1)[0][0]
