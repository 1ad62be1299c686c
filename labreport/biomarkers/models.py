import math
import re
import uuid
from dataclasses import dataclass, field
from enum import Enum

HIGH_CONFIDENCE_THRESHOLD = 0.8
REMOTE_ANALYSIS_CONFIDENCE = 0.95
MANUAL_CONFIDENCE = 1.0

_NUMERIC_PATTERN = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)$")


class HealthCategory(str, Enum):
    GENERAL = "general"
    CARDIOVASCULAR = "cardiovascular"
    METABOLIC = "metabolic"
    HEMATOLOGY = "hematology"
    LIVER_FUNCTION = "liver_function"
    KIDNEY_FUNCTION = "kidney_function"
    THYROID = "thyroid"
    NUTRITIONAL = "nutritional"
    IMMUNE = "immune"
    INFLAMMATION = "inflammation"

    @classmethod
    def from_label(cls, label: str) -> "HealthCategory | None":
        """Resolve a free-form label such as 'Liver Function' or 'liver-function'."""
        key = re.sub(r"[\s\-]+", "_", label.strip().lower())
        try:
            return cls(key)
        except ValueError:
            return None


class BiomarkerStatus(str, Enum):
    NORMAL = "normal"
    OPTIMAL = "optimal"
    BORDERLINE = "borderline"
    LOW = "low"
    HIGH = "high"
    CRITICAL = "critical"
    ABNORMAL = "abnormal"
    UNKNOWN = "unknown"

    @property
    def is_abnormal(self) -> bool:
        return self in {
            BiomarkerStatus.LOW,
            BiomarkerStatus.HIGH,
            BiomarkerStatus.CRITICAL,
            BiomarkerStatus.ABNORMAL,
        }


class ExtractionMethod(str, Enum):
    OCR_REMOTE = "ocr-remote"
    OCR_LOCAL = "ocr-local"
    MANUAL = "manual"


def parse_numeric(raw: str) -> float | None:
    """Return the float value of ``raw`` when the whole string is a plain number."""
    candidate = raw.strip().replace(",", "")
    if not _NUMERIC_PATTERN.match(candidate):
        return None
    value = float(candidate)
    if math.isnan(value) or math.isinf(value):
        return None
    return value


@dataclass(frozen=True)
class ExtractedBiomarker:
    """One biomarker measurement as read from a report or entered by the user.

    ``numeric_value`` is derived from ``value`` so it can never disagree
    with the raw string.
    """

    name: str
    value: str
    confidence: float
    method: ExtractionMethod
    unit: str | None = None
    reference_range: str | None = None
    status: BiomarkerStatus = BiomarkerStatus.UNKNOWN
    category: HealthCategory | None = None
    notes: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if not self.name.strip():
            raise ValueError("biomarker name must be a non-empty string")

    @property
    def numeric_value(self) -> float | None:
        return parse_numeric(self.value)

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= HIGH_CONFIDENCE_THRESHOLD

    @property
    def needs_validation(self) -> bool:
        return not self.is_high_confidence


@dataclass(frozen=True)
class BiomarkerSetSummary:
    total_extracted: int
    high_confidence_count: int
    categories: tuple[HealthCategory, ...]
    average_confidence: float | None = None
