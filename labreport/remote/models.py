from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class RemoteStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {RemoteStatus.COMPLETED, RemoteStatus.FAILED, RemoteStatus.CANCELLED}


class ProcessingStage(str, Enum):
    UPLOADED = "uploaded"
    OCR_PROCESSING = "ocr_processing"
    DOCUMENT_CLASSIFICATION = "document_classification"
    BIOMARKER_EXTRACTION = "biomarker_extraction"
    HEALTH_ANALYSIS = "health_analysis"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def description(self) -> str:
        return _STAGE_DESCRIPTIONS[self]

    @property
    def is_compute_heavy(self) -> bool:
        """Stages where the remote side changes quickly and is polled faster."""
        return self in {ProcessingStage.OCR_PROCESSING, ProcessingStage.HEALTH_ANALYSIS}


_STAGE_DESCRIPTIONS = {
    ProcessingStage.UPLOADED: "Document uploaded",
    ProcessingStage.OCR_PROCESSING: "Extracting text from document",
    ProcessingStage.DOCUMENT_CLASSIFICATION: "Classifying document type",
    ProcessingStage.BIOMARKER_EXTRACTION: "Extracting biomarkers",
    ProcessingStage.HEALTH_ANALYSIS: "Analyzing health data",
    ProcessingStage.COMPLETED: "Processing completed",
    ProcessingStage.FAILED: "Processing failed",
}


@dataclass(frozen=True)
class StatusUpdate:
    """One progress event for a remote report."""

    stage: ProcessingStage
    progress_fraction: float
    status: RemoteStatus
    error_message: str | None = None

    def __post_init__(self) -> None:
        clamped = min(1.0, max(0.0, self.progress_fraction))
        object.__setattr__(self, "progress_fraction", clamped)


@dataclass(frozen=True)
class UploadReceipt:
    report_id: str
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class AnalysisPreferences:
    include_recommendations: bool = True
    focus_areas: tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisBiomarker:
    name: str
    value: float
    unit: str | None
    normal_range: str | None
    status: str


@dataclass(frozen=True)
class CategoryAnalysis:
    category: str
    biomarkers: tuple[AnalysisBiomarker, ...]


@dataclass(frozen=True)
class AnalysisPayload:
    """Full remote analysis of a report, grouped by health category."""

    categories: tuple[CategoryAnalysis, ...]
    confidence: float
    document_type: str | None = None
    extracted_text: str = ""

    @property
    def biomarker_count(self) -> int:
        return sum(len(group.biomarkers) for group in self.categories)
