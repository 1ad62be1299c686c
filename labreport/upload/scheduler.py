import asyncio
import itertools
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from labreport.config.settings import Settings
from labreport.logging.logger import Log
from labreport.processing.exceptions import PermissionDeniedError, ProcessingError, UploadFailedError
from labreport.processing.models import Document
from labreport.remote.base import BaseRemoteAnalysisService
from labreport.remote.models import AnalysisPreferences
from labreport.upload.exceptions import UploadValidationError
from labreport.upload.models import UploadPriority, UploadStatus, UploadTask, UploadTaskStatus
from labreport.upload.store import BaseUploadTaskStore, InMemoryUploadTaskStore

PRIORITY_MODES = ("hint", "strict")


class BackgroundUploadScheduler:
    """Uploads documents in background tasks independent of any session.

    Queued tasks are dispatched highest priority first. With ``hint`` mode
    up to ``max_concurrent`` uploads run at once, so a lower-priority upload
    may still be in flight when a higher one arrives; ``strict`` mode runs
    one upload at a time so dispatch order is completion order.
    """

    def __init__(
        self,
        service: BaseRemoteAnalysisService,
        *,
        store: BaseUploadTaskStore | None = None,
        max_concurrent: int = 3,
        max_retries: int = 3,
        retry_base_seconds: float = 10.0,
        max_file_size_bytes: int = 5 * 1024 * 1024,
        priority_mode: str = "hint",
        preferences: AnalysisPreferences | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if priority_mode not in PRIORITY_MODES:
            raise ValueError(f"Unknown priority mode '{priority_mode}'. Choose from: {PRIORITY_MODES}")
        self._service = service
        self._store = store or InMemoryUploadTaskStore()
        self._worker_count = 1 if priority_mode == "strict" else max_concurrent
        self._max_retries = max_retries
        self._retry_base_seconds = retry_base_seconds
        self._max_file_size_bytes = max_file_size_bytes
        self._preferences = preferences or AnalysisPreferences()
        self._sleep = sleep

        self._tasks: dict[str, UploadTask] = {}
        self._done: dict[str, asyncio.Event] = {}
        self._inflight: dict[str, asyncio.Task[object]] = {}
        self._queue: asyncio.PriorityQueue[tuple[int, int, str]] = asyncio.PriorityQueue()
        self._sequence = itertools.count()
        self._workers: list[asyncio.Task[None]] = []
        self._timers: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        service: BaseRemoteAnalysisService,
        store: BaseUploadTaskStore | None = None,
    ) -> "BackgroundUploadScheduler":
        return cls(
            service,
            store=store,
            max_concurrent=settings.background_max_concurrent,
            max_retries=settings.background_max_retries,
            retry_base_seconds=settings.background_retry_base_seconds,
            max_file_size_bytes=settings.background_max_file_size_bytes,
            priority_mode=settings.upload_priority_mode,
        )

    def schedule(self, document: Document, priority: UploadPriority = UploadPriority.NORMAL) -> str:
        """Queue ``document`` for upload and return the task id immediately.

        Raises:
            UploadValidationError: if the document is empty or too large.
        """
        self._validate(document)
        task = UploadTask(document=document, priority=priority)
        self._register(task)
        self._store.save(task)
        self._enqueue(task)
        Log.info(
            f"Scheduled background upload {task.id}",
            document=document.filename,
            priority=priority.name.lower(),
        )
        return task.id

    def cancel(self, task_id: str) -> bool:
        """Cancel a task. Returns False when it is unknown or already finished."""
        task = self._tasks.get(task_id)
        if task is None or task.status.is_terminal:
            return False
        self._finish(task, UploadTaskStatus.CANCELLED)
        upload = self._inflight.get(task_id)
        if upload is not None:
            upload.cancel()
        Log.info(f"Cancelled background upload {task_id}")
        return True

    def status_of(self, task_id: str) -> UploadStatus | None:
        task = self._tasks.get(task_id)
        return task.snapshot() if task is not None else None

    def all_statuses(self) -> list[UploadStatus]:
        return [task.snapshot() for task in self._tasks.values()]

    def resume_pending(self) -> int:
        """Re-queue unfinished tasks from the store. Returns how many were resumed."""
        resumed = 0
        for task in self._store.load_unfinished():
            if task.id in self._tasks:
                continue
            task.status = UploadTaskStatus.PENDING
            self._register(task)
            self._enqueue(task)
            resumed += 1
        if resumed:
            Log.info(f"Resumed {resumed} background uploads")
        return resumed

    def prune_finished(self) -> int:
        """Forget terminal tasks and delete them from the store. Returns how many were pruned."""
        finished = [task_id for task_id, task in self._tasks.items() if task.status.is_terminal]
        for task_id in finished:
            del self._tasks[task_id]
            del self._done[task_id]
            self._store.delete(task_id)
        if finished:
            Log.info(f"Pruned {len(finished)} finished background uploads")
        return len(finished)

    async def wait_for(self, task_id: str) -> UploadStatus:
        await self._done[task_id].wait()
        return self._tasks[task_id].snapshot()

    async def join(self) -> list[UploadStatus]:
        """Wait until every known task has reached a terminal status."""
        await asyncio.gather(*(event.wait() for event in self._done.values()))
        return self.all_statuses()

    async def shutdown(self) -> None:
        for task in [*self._workers, *self._timers]:
            task.cancel()
        await asyncio.gather(*self._workers, *self._timers, return_exceptions=True)
        self._workers.clear()
        self._timers.clear()

    def _validate(self, document: Document) -> None:
        if not document.payload:
            raise UploadValidationError(f"{document.filename} is empty")
        if document.size > self._max_file_size_bytes:
            raise UploadValidationError(
                f"{document.filename} is {document.size} bytes, "
                f"above the {self._max_file_size_bytes} byte background upload limit"
            )

    def _register(self, task: UploadTask) -> None:
        self._tasks[task.id] = task
        self._done[task.id] = asyncio.Event()

    def _enqueue(self, task: UploadTask) -> None:
        self._queue.put_nowait((-int(task.priority), next(self._sequence), task.id))
        if not self._workers:
            self._workers = [
                asyncio.create_task(self._worker(), name=f"upload-worker-{i}")
                for i in range(self._worker_count)
            ]

    async def _worker(self) -> None:
        while True:
            _, _, task_id = await self._queue.get()
            try:
                await self._run(task_id)
            finally:
                self._queue.task_done()

    async def _run(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is None or task.status.is_terminal:
            return
        task.status = UploadTaskStatus.UPLOADING
        task.started_at = datetime.now(timezone.utc)
        self._store.save(task)

        upload = asyncio.create_task(self._service.upload(task.document, self._preferences))
        self._inflight[task_id] = upload
        try:
            receipt = await upload
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.status is UploadTaskStatus.CANCELLED and not (current and current.cancelling()):
                return
            raise
        except ProcessingError as exc:
            self._handle_failure(task, exc)
            return
        except Exception as exc:
            self._handle_failure(task, UploadFailedError(f"Unexpected upload error: {exc}"))
            return
        finally:
            self._inflight.pop(task_id, None)

        if task.status is UploadTaskStatus.CANCELLED:
            return
        task.report_id = receipt.report_id
        self._finish(task, UploadTaskStatus.COMPLETED)
        Log.info(f"Background upload {task_id} completed", report=receipt.report_id)

    def _handle_failure(self, task: UploadTask, exc: ProcessingError) -> None:
        task.error_message = str(exc)
        retryable = exc.recoverable and not isinstance(exc, PermissionDeniedError)
        if retryable and task.retry_count < self._max_retries:
            task.retry_count += 1
            task.status = UploadTaskStatus.RETRYING
            self._store.save(task)
            delay = self._retry_base_seconds * 2 ** (task.retry_count - 1)
            Log.warning(
                f"Background upload {task.id} failed, retrying in {delay}s: {exc}",
                attempt=task.retry_count,
            )
            timer = asyncio.create_task(self._requeue_after(task, delay))
            self._timers.add(timer)
            timer.add_done_callback(self._timers.discard)
            return
        self._finish(task, UploadTaskStatus.FAILED)
        Log.error(f"Background upload {task.id} failed permanently: {exc}")

    async def _requeue_after(self, task: UploadTask, delay: float) -> None:
        await self._sleep(delay)
        if task.status is UploadTaskStatus.RETRYING:
            self._enqueue(task)

    def _finish(self, task: UploadTask, status: UploadTaskStatus) -> None:
        task.status = status
        task.completed_at = datetime.now(timezone.utc)
        self._store.save(task)
        self._done[task.id].set()
