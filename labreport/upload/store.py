from abc import ABC, abstractmethod

from labreport.upload.models import UploadTask


class BaseUploadTaskStore(ABC):
    """Persists background upload tasks so they outlive the session."""

    @abstractmethod
    def save(self, task: UploadTask) -> None:
        """Insert or update a task."""

    @abstractmethod
    def load_unfinished(self) -> list[UploadTask]:
        """Return tasks that are neither completed, failed nor cancelled."""

    @abstractmethod
    def delete(self, task_id: str) -> None:
        """Remove a task. Unknown ids are ignored."""


class InMemoryUploadTaskStore(BaseUploadTaskStore):
    def __init__(self) -> None:
        self._tasks: dict[str, UploadTask] = {}

    def save(self, task: UploadTask) -> None:
        self._tasks[task.id] = task

    def load_unfinished(self) -> list[UploadTask]:
        return [task for task in self._tasks.values() if not task.status.is_terminal]

    def delete(self, task_id: str) -> None:
        self._tasks.pop(task_id, None)
