from dataclasses import dataclass

from labreport.biomarkers.extractor import BiomarkerExtractor
from labreport.config.preferences import (
    BasePreferenceStore,
    InMemoryPreferenceStore,
    UserPreferences,
)
from labreport.config.settings import Settings
from labreport.database.repositories.preferences_repository import PreferencesRepository
from labreport.database.repositories.upload_task_repository import UploadTaskRepository
from labreport.ocr.factory import LocalEngineFactory
from labreport.ocr.models import LocalOcrConfig
from labreport.processing.session import DocumentSessionManager
from labreport.remote.base import BaseRemoteAnalysisService
from labreport.remote.http_client import HttpRemoteAnalysisService
from labreport.remote.monitor import UploadStatusMonitor
from labreport.routing.extractors import LocalExtractor, RemoteExtractor
from labreport.routing.router import SmartOCRRouter
from labreport.routing.tracker import PerformanceTracker
from labreport.upload.scheduler import BackgroundUploadScheduler
from labreport.upload.store import BaseUploadTaskStore, InMemoryUploadTaskStore

STORES = ("memory", "postgres")


@dataclass
class SessionContext:
    """A wired session plus the long-lived collaborators that need shutting down."""

    session: DocumentSessionManager
    service: BaseRemoteAnalysisService
    monitor: UploadStatusMonitor
    scheduler: BackgroundUploadScheduler
    tracker: PerformanceTracker

    async def aclose(self) -> None:
        self.monitor.stop_all()
        await self.scheduler.shutdown()
        await self.service.aclose()


def build_preference_store(settings: Settings) -> BasePreferenceStore:
    defaults = UserPreferences.from_settings(settings)
    if settings.preference_store == "postgres":
        return PreferencesRepository(defaults)
    if settings.preference_store == "memory":
        return InMemoryPreferenceStore(defaults)
    raise ValueError(f"Unknown preference store '{settings.preference_store}'. Choose from: {STORES}")


def build_upload_task_store(settings: Settings) -> BaseUploadTaskStore:
    if settings.upload_task_store == "postgres":
        return UploadTaskRepository()
    if settings.upload_task_store == "memory":
        return InMemoryUploadTaskStore()
    raise ValueError(f"Unknown upload task store '{settings.upload_task_store}'. Choose from: {STORES}")


def build_session(
    settings: Settings, service: BaseRemoteAnalysisService | None = None
) -> SessionContext:
    """Wire the whole pipeline from settings."""
    service = service or HttpRemoteAnalysisService.from_settings(settings)
    extractor = BiomarkerExtractor()
    tracker = PerformanceTracker()
    monitor = UploadStatusMonitor(service)
    router = SmartOCRRouter(
        remote=RemoteExtractor(service, monitor, extractor),
        local=LocalExtractor(
            LocalEngineFactory.create(settings),
            extractor,
            LocalOcrConfig(language=settings.tesseract_language),
        ),
        tracker=tracker,
    )
    scheduler = BackgroundUploadScheduler.from_settings(
        settings, service, store=build_upload_task_store(settings)
    )
    session = DocumentSessionManager(
        router=router,
        scheduler=scheduler,
        monitor=monitor,
        tracker=tracker,
        preferences=build_preference_store(settings),
        extractor=extractor,
        large_file_threshold_bytes=settings.large_file_threshold_bytes,
    )
    return SessionContext(
        session=session,
        service=service,
        monitor=monitor,
        scheduler=scheduler,
        tracker=tracker,
    )
