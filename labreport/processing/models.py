import mimetypes
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from labreport.biomarkers.models import HealthCategory
from labreport.routing.models import OCRMethod

SUPPORTED_MIME_TYPES = frozenset({"application/pdf", "image/jpeg", "image/png", "image/tiff"})


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES

    @property
    def is_in_flight(self) -> bool:
        return self in {
            ProcessingStatus.UPLOADING,
            ProcessingStatus.PROCESSING,
            ProcessingStatus.ANALYZING,
        }

    @property
    def can_retry(self) -> bool:
        return self in {ProcessingStatus.FAILED, ProcessingStatus.CANCELLED}

    def can_advance_to(self, target: "ProcessingStatus") -> bool:
        """Forward-only check. Retry and cancel bypass it."""
        if self.is_terminal:
            return False
        if target in {ProcessingStatus.FAILED, ProcessingStatus.CANCELLED}:
            return True
        return _FORWARD_RANK[target] >= _FORWARD_RANK[self]


_TERMINAL_STATUSES = frozenset(
    {ProcessingStatus.COMPLETED, ProcessingStatus.FAILED, ProcessingStatus.CANCELLED}
)

_FORWARD_RANK = {
    ProcessingStatus.PENDING: 0,
    ProcessingStatus.UPLOADING: 1,
    ProcessingStatus.PROCESSING: 2,
    ProcessingStatus.ANALYZING: 3,
    ProcessingStatus.COMPLETED: 4,
}


class WorkflowStep(str, Enum):
    SELECT_DOCUMENT = "select_document"
    UPLOAD_DOCUMENT = "upload_document"
    PROCESSING = "processing"
    OCR_PROCESSING = "ocr_processing"
    CLASSIFY_DOCUMENT = "classify_document"
    EXTRACT_BIOMARKERS = "extract_biomarkers"
    ANALYZE_DATA = "analyze_data"
    REVIEW_RESULTS = "review_results"
    VALIDATE_BIOMARKERS = "validate_biomarkers"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def step_number(self) -> int:
        if self is WorkflowStep.ERROR:
            return 0
        return _ORDERED_STEPS.index(self) + 1

    @property
    def next_step(self) -> "WorkflowStep":
        return _NEXT_STEP[self]

    @property
    def previous_step(self) -> "WorkflowStep":
        return _PREVIOUS_STEP[self]

    @property
    def title(self) -> str:
        return self.value.replace("_", " ").title()


_ORDERED_STEPS = [step for step in WorkflowStep if step is not WorkflowStep.ERROR]

_NEXT_STEP = {
    **{step: _ORDERED_STEPS[i + 1] for i, step in enumerate(_ORDERED_STEPS[:-1])},
    WorkflowStep.COMPLETE: WorkflowStep.SELECT_DOCUMENT,
    WorkflowStep.ERROR: WorkflowStep.SELECT_DOCUMENT,
}

_PREVIOUS_STEP = {
    **{step: _ORDERED_STEPS[i] for i, step in enumerate(_ORDERED_STEPS[1:])},
    WorkflowStep.SELECT_DOCUMENT: WorkflowStep.SELECT_DOCUMENT,
    WorkflowStep.ERROR: WorkflowStep.SELECT_DOCUMENT,
}

TOTAL_WORKFLOW_STEPS = len(_ORDERED_STEPS)


def detect_mime_type(payload: bytes, filename: str | None = None) -> str:
    """Sniff the payload's magic bytes, falling back to the filename extension."""
    if payload.startswith(b"%PDF"):
        return "application/pdf"
    if payload.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if payload.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if payload[:4] in (b"II*\x00", b"MM\x00*"):
        return "image/tiff"
    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed
    return "application/octet-stream"


@dataclass(frozen=True)
class DocumentInput:
    """Raw bytes handed over by the caller before a Document exists."""

    payload: bytes
    filename: str | None = None
    mime_type: str | None = None


@dataclass
class Document:
    """A user supplied lab report. Mutated only by the session manager."""

    filename: str
    payload: bytes
    mime_type: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: ProcessingStatus = ProcessingStatus.PENDING
    document_type: str | None = None
    health_category: HealthCategory | None = None
    ocr_confidence: float | None = None
    thumbnail: bytes | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.payload)

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == "application/pdf"

    @classmethod
    def from_input(cls, item: DocumentInput, sequence: int = 1) -> "Document":
        mime_type = item.mime_type or detect_mime_type(item.payload, item.filename)
        filename = item.filename or _generated_filename(mime_type, sequence)
        return cls(filename=filename, payload=item.payload, mime_type=mime_type)


def _generated_filename(mime_type: str, sequence: int) -> str:
    extension = mimetypes.guess_extension(mime_type) or ".bin"
    if extension == ".jpe":
        extension = ".jpg"
    timestamp = int(datetime.now(timezone.utc).timestamp())
    return f"lab_report_{timestamp}_{sequence}{extension}"


@dataclass(frozen=True)
class ProcessingSummary:
    document_id: str
    total_extracted: int
    high_confidence_count: int
    categories: tuple[HealthCategory, ...]
    method: OCRMethod
    overall_confidence: float
    completed_at: datetime
    is_fallback: bool = False
    document_type: str | None = None
