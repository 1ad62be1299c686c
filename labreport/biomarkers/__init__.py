from labreport.biomarkers.models import (
    BiomarkerStatus,
    ExtractedBiomarker,
    ExtractionMethod,
    HealthCategory,
)
from labreport.biomarkers.record_set import BiomarkerSet

__all__ = [
    "BiomarkerSet",
    "BiomarkerStatus",
    "ExtractedBiomarker",
    "ExtractionMethod",
    "HealthCategory",
]
