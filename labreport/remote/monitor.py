import asyncio
from dataclasses import dataclass

from labreport.logging.logger import Log
from labreport.processing.exceptions import OCRFailedError, ProcessingError
from labreport.remote.base import BaseRemoteAnalysisService
from labreport.remote.channel import StatusChannel
from labreport.remote.models import RemoteStatus, StatusUpdate


@dataclass(frozen=True)
class MonitoringStatistics:
    total: int
    completed: int
    failed: int
    processing: int
    average_progress: float


class UploadStatusMonitor:
    """Runs one polling task per report id and feeds it into a StatusChannel."""

    def __init__(self, service: BaseRemoteAnalysisService) -> None:
        self._service = service
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._channels: dict[str, StatusChannel] = {}
        self._latest: dict[str, StatusUpdate] = {}

    def start_monitoring(self, report_id: str) -> StatusChannel:
        """Start monitoring ``report_id``, replacing any live monitor for it."""
        if report_id in self._tasks:
            Log.warning(f"Replacing live monitor for report {report_id}")
            self.stop_monitoring(report_id)
        channel = StatusChannel(report_id)
        task = asyncio.create_task(self._pump(report_id, channel), name=f"monitor-{report_id}")
        self._tasks[report_id] = task
        self._channels[report_id] = channel
        Log.info(f"Started monitoring report {report_id}")
        return channel

    def stop_monitoring(self, report_id: str) -> None:
        task = self._tasks.pop(report_id, None)
        channel = self._channels.pop(report_id, None)
        if task is not None and not task.done():
            task.cancel()
            Log.info(f"Stopped monitoring report {report_id}")
        if channel is not None:
            channel.close()

    def stop_all(self) -> None:
        for report_id in list(self._tasks):
            self.stop_monitoring(report_id)

    def is_monitoring(self, report_id: str) -> bool:
        task = self._tasks.get(report_id)
        return task is not None and not task.done()

    @property
    def active_report_ids(self) -> list[str]:
        return [report_id for report_id in self._tasks if self.is_monitoring(report_id)]

    def latest_status(self, report_id: str) -> StatusUpdate | None:
        return self._latest.get(report_id)

    def statistics(self) -> MonitoringStatistics:
        updates = list(self._latest.values())
        return MonitoringStatistics(
            total=len(updates),
            completed=sum(1 for u in updates if u.status is RemoteStatus.COMPLETED),
            failed=sum(1 for u in updates if u.status is RemoteStatus.FAILED),
            processing=sum(1 for u in updates if not u.status.is_terminal),
            average_progress=(
                sum(u.progress_fraction for u in updates) / len(updates) if updates else 0.0
            ),
        )

    async def _pump(self, report_id: str, channel: StatusChannel) -> None:
        try:
            async for update in self._service.status_stream(report_id):
                self._latest[report_id] = update
                channel.publish(update)
                if update.status.is_terminal:
                    Log.info(f"Report {report_id} reached status {update.status.value}")
                    break
            channel.close()
        except asyncio.CancelledError:
            channel.close()
            raise
        except ProcessingError as exc:
            Log.error(f"Monitoring report {report_id} failed: {exc}")
            channel.close(exc)
        except Exception as exc:
            Log.error(f"Unexpected error while monitoring report {report_id}: {exc}")
            channel.close(OCRFailedError("Status monitoring failed", details=str(exc)))
        finally:
            if self._tasks.get(report_id) is asyncio.current_task():
                del self._tasks[report_id]
                self._channels.pop(report_id, None)
