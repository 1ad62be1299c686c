import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum

from labreport.processing.models import Document


class UploadPriority(IntEnum):
    LOW = 1
    NORMAL = 2
    HIGH = 3


class UploadTaskStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {
            UploadTaskStatus.COMPLETED,
            UploadTaskStatus.FAILED,
            UploadTaskStatus.CANCELLED,
        }


@dataclass
class UploadTask:
    """A background upload owned by the scheduler."""

    document: Document
    priority: UploadPriority = UploadPriority.NORMAL
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: UploadTaskStatus = UploadTaskStatus.PENDING
    scheduled_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    retry_count: int = 0
    report_id: str | None = None
    error_message: str | None = None

    def snapshot(self) -> "UploadStatus":
        return UploadStatus(
            task_id=self.id,
            document_id=self.document.id,
            filename=self.document.filename,
            priority=self.priority,
            status=self.status,
            retry_count=self.retry_count,
            report_id=self.report_id,
            error_message=self.error_message,
            scheduled_at=self.scheduled_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )


@dataclass(frozen=True)
class UploadStatus:
    """Read-only view of an UploadTask handed to callers."""

    task_id: str
    document_id: str
    filename: str
    priority: UploadPriority
    status: UploadTaskStatus
    retry_count: int
    report_id: str | None
    error_message: str | None
    scheduled_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
