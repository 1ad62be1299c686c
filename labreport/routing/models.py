from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from labreport.biomarkers.models import ExtractedBiomarker

_TEXT_LENGTH_TARGET = 1000
_BIOMARKER_COUNT_TARGET = 10


class OCRMethod(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


def quality_score(text_length: int, biomarker_count: int) -> float:
    """Heuristic quality of an extraction: 60% text volume, 40% biomarker yield."""
    text_part = min(1.0, text_length / _TEXT_LENGTH_TARGET) * 0.6
    biomarker_part = min(1.0, biomarker_count / _BIOMARKER_COUNT_TARGET) * 0.4
    return text_part + biomarker_part


@dataclass(frozen=True)
class OCRRoutingConfig:
    prefer_remote: bool = True
    allow_fallback: bool = True
    timeout_seconds: float = 30.0
    quality_threshold: float = 0.8

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if not 0.0 <= self.quality_threshold <= 1.0:
            raise ValueError("quality_threshold must be within [0, 1]")


@dataclass(frozen=True)
class OCRResult:
    """Outcome of a single accepted extraction attempt."""

    method: OCRMethod
    confidence: float
    biomarkers: tuple[ExtractedBiomarker, ...] = ()
    is_fallback: bool = False
    extracted_text: str = ""
    quality_score: float = 0.0
    processing_time_seconds: float = 0.0
    document_type: str | None = None
    fallback_reason: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")


@dataclass(frozen=True)
class AttemptMetric:
    method: OCRMethod
    latency_seconds: float
    success: bool
    quality: float
    document_size: int
    recorded_at: datetime


@dataclass(frozen=True)
class MethodStats:
    operations: int
    success_rate: float
    average_latency_seconds: float
    average_quality: float
    consecutive_failures: int


@dataclass(frozen=True)
class PerformanceAnalytics:
    total_operations: int
    remote: MethodStats
    local: MethodStats
    recommended_method: OCRMethod
    generated_at: datetime

    def stats_for(self, method: OCRMethod) -> MethodStats:
        return self.remote if method is OCRMethod.REMOTE else self.local


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
