from dataclasses import dataclass
from datetime import datetime


@dataclass
class UploadTaskRecord:
    """Represents a row from the background_upload_tasks table."""

    id: str
    document_id: str
    filename: str
    mime_type: str
    payload: bytes
    priority: int
    status: str
    retry_count: int
    scheduled_at: datetime
    report_id: str | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
