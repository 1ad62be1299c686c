import asyncio

import pytest

from labreport.processing.exceptions import OCRFailedError
from labreport.remote.channel import StatusChannel
from labreport.remote.models import ProcessingStage, RemoteStatus
from labreport.remote.monitor import UploadStatusMonitor
from tests.fakes import HAPPY_PATH_UPDATES, FakeRemoteService, status


async def _drain(channel: StatusChannel) -> list:
    return [update async for update in channel]


class TestStatusChannel:
    async def test_latest_update_wins(self) -> None:
        channel = StatusChannel("r-1")
        channel.publish(status(ProcessingStage.UPLOADED, 10, RemoteStatus.UPLOADING))
        channel.publish(status(ProcessingStage.OCR_PROCESSING, 40, RemoteStatus.PROCESSING))
        channel.close()

        updates = await _drain(channel)

        assert [u.progress_fraction for u in updates] == [0.4]

    async def test_error_raised_after_pending_update(self) -> None:
        channel = StatusChannel("r-1")
        channel.publish(status(ProcessingStage.UPLOADED, 10, RemoteStatus.UPLOADING))
        channel.close(OCRFailedError("lost"))

        first = await channel.__anext__()
        assert first.status is RemoteStatus.UPLOADING
        with pytest.raises(OCRFailedError):
            await channel.__anext__()

    async def test_publish_after_close_is_ignored(self) -> None:
        channel = StatusChannel("r-1")
        channel.close()
        channel.publish(status(ProcessingStage.UPLOADED, 10, RemoteStatus.UPLOADING))

        assert channel.closed
        assert await _drain(channel) == []

    async def test_consumer_waits_for_producer(self) -> None:
        channel = StatusChannel("r-1")

        async def produce() -> None:
            await asyncio.sleep(0)
            channel.publish(status(ProcessingStage.COMPLETED, 100, RemoteStatus.COMPLETED))
            channel.close()

        producer = asyncio.create_task(produce())
        updates = await _drain(channel)
        await producer

        assert [u.status for u in updates] == [RemoteStatus.COMPLETED]


class TestUploadStatusMonitor:
    async def test_streams_until_terminal(self) -> None:
        monitor = UploadStatusMonitor(FakeRemoteService())

        updates = await _drain(monitor.start_monitoring("r-1"))

        assert updates[-1].status is RemoteStatus.COMPLETED
        assert monitor.latest_status("r-1") == HAPPY_PATH_UPDATES[-1]

    async def test_finished_monitor_is_removed(self) -> None:
        monitor = UploadStatusMonitor(FakeRemoteService())

        await _drain(monitor.start_monitoring("r-1"))
        await asyncio.sleep(0)

        assert not monitor.is_monitoring("r-1")
        assert monitor.active_report_ids == []

    async def test_stream_error_reaches_consumer(self) -> None:
        service = FakeRemoteService(updates=(), stream_error=OCRFailedError("status lost"))
        monitor = UploadStatusMonitor(service)

        with pytest.raises(OCRFailedError, match="status lost"):
            await _drain(monitor.start_monitoring("r-1"))

    async def test_unexpected_error_becomes_ocr_failure(self) -> None:
        service = FakeRemoteService(updates=(), stream_error=RuntimeError("socket closed"))
        monitor = UploadStatusMonitor(service)

        with pytest.raises(OCRFailedError, match="Status monitoring failed"):
            await _drain(monitor.start_monitoring("r-1"))

    async def test_restart_replaces_live_monitor(self) -> None:
        service = FakeRemoteService(updates=(), hang_after_updates=True)
        monitor = UploadStatusMonitor(service)

        first = monitor.start_monitoring("r-1")
        await asyncio.sleep(0)
        second = monitor.start_monitoring("r-1")
        await asyncio.sleep(0)

        assert first.closed
        assert not second.closed
        assert monitor.active_report_ids == ["r-1"]
        monitor.stop_all()
        assert second.closed

    async def test_stop_monitoring_closes_channel(self) -> None:
        monitor = UploadStatusMonitor(FakeRemoteService(updates=(), hang_after_updates=True))
        channel = monitor.start_monitoring("r-1")
        await asyncio.sleep(0)

        monitor.stop_monitoring("r-1")

        assert await _drain(channel) == []
        assert not monitor.is_monitoring("r-1")

    async def test_statistics(self) -> None:
        monitor = UploadStatusMonitor(FakeRemoteService())
        await _drain(monitor.start_monitoring("r-1"))

        stats = monitor.statistics()

        assert stats.total == 1
        assert stats.completed == 1
        assert stats.average_progress == 1.0
