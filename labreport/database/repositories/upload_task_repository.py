from psycopg.rows import dict_row

from labreport.database.connection import get_connection
from labreport.database.models import UploadTaskRecord
from labreport.processing.models import Document
from labreport.upload.models import UploadPriority, UploadTask, UploadTaskStatus
from labreport.upload.store import BaseUploadTaskStore

_UNFINISHED = ("pending", "uploading", "retrying")


class UploadTaskRepository(BaseUploadTaskStore):
    """Database operations for the background_upload_tasks table."""

    def save(self, task: UploadTask) -> None:
        record = _to_record(task)
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO background_upload_tasks
                (id, document_id, filename, mime_type, payload, priority, status,
                 retry_count, report_id, error_message, scheduled_at, started_at, completed_at)
                VALUES (%s::uuid, %s::uuid, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    status = EXCLUDED.status,
                    retry_count = EXCLUDED.retry_count,
                    report_id = EXCLUDED.report_id,
                    error_message = EXCLUDED.error_message,
                    started_at = EXCLUDED.started_at,
                    completed_at = EXCLUDED.completed_at
                """,
                (
                    record.id,
                    record.document_id,
                    record.filename,
                    record.mime_type,
                    record.payload,
                    record.priority,
                    record.status,
                    record.retry_count,
                    record.report_id,
                    record.error_message,
                    record.scheduled_at,
                    record.started_at,
                    record.completed_at,
                ),
            )
            conn.commit()

    def load_unfinished(self) -> list[UploadTask]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id::text, document_id::text, filename, mime_type, payload,
                           priority, status, retry_count, report_id, error_message,
                           scheduled_at, started_at, completed_at
                    FROM background_upload_tasks
                    WHERE status = ANY(%s)
                    ORDER BY priority DESC, scheduled_at
                    """,
                    (list(_UNFINISHED),),
                )
                rows = cur.fetchall()
        return [_from_record(UploadTaskRecord(**row)) for row in rows]

    def find_by_id(self, task_id: str) -> UploadTaskRecord | None:
        """Find a task row by id. Useful for tests."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id::text, document_id::text, filename, mime_type, payload,
                           priority, status, retry_count, report_id, error_message,
                           scheduled_at, started_at, completed_at
                    FROM background_upload_tasks
                    WHERE id = %s::uuid
                    """,
                    (task_id,),
                )
                row = cur.fetchone()
        return UploadTaskRecord(**row) if row is not None else None

    def delete(self, task_id: str) -> None:
        with get_connection() as conn:
            conn.execute("DELETE FROM background_upload_tasks WHERE id = %s::uuid", (task_id,))
            conn.commit()


def _to_record(task: UploadTask) -> UploadTaskRecord:
    return UploadTaskRecord(
        id=task.id,
        document_id=task.document.id,
        filename=task.document.filename,
        mime_type=task.document.mime_type,
        payload=task.document.payload,
        priority=int(task.priority),
        status=task.status.value,
        retry_count=task.retry_count,
        scheduled_at=task.scheduled_at,
        report_id=task.report_id,
        error_message=task.error_message,
        started_at=task.started_at,
        completed_at=task.completed_at,
    )


def _from_record(record: UploadTaskRecord) -> UploadTask:
    document = Document(
        id=record.document_id,
        filename=record.filename,
        payload=bytes(record.payload),
        mime_type=record.mime_type,
    )
    return UploadTask(
        id=record.id,
        document=document,
        priority=UploadPriority(record.priority),
        status=UploadTaskStatus(record.status),
        scheduled_at=record.scheduled_at,
        started_at=record.started_at,
        completed_at=record.completed_at,
        retry_count=record.retry_count,
        report_id=record.report_id,
        error_message=record.error_message,
    )
