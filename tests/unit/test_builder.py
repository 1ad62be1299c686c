import pytest

from labreport.config.preferences import InMemoryPreferenceStore
from labreport.config.settings import Settings
from labreport.database.repositories.preferences_repository import PreferencesRepository
from labreport.database.repositories.upload_task_repository import UploadTaskRepository
from labreport.processing.builder import (
    build_preference_store,
    build_session,
    build_upload_task_store,
)
from labreport.upload.store import InMemoryUploadTaskStore
from tests.fakes import FakeRemoteService


class TestStoreSelection:
    def test_memory_stores_by_default(self) -> None:
        settings = Settings()

        assert isinstance(build_preference_store(settings), InMemoryPreferenceStore)
        assert isinstance(build_upload_task_store(settings), InMemoryUploadTaskStore)

    def test_postgres_stores(self) -> None:
        settings = Settings(preference_store="postgres", upload_task_store="postgres")

        assert isinstance(build_preference_store(settings), PreferencesRepository)
        assert isinstance(build_upload_task_store(settings), UploadTaskRepository)

    def test_preference_defaults_come_from_settings(self) -> None:
        store = build_preference_store(Settings(ocr_allow_fallback=False))

        assert store.load().allow_fallback is False

    def test_unknown_store_raises(self) -> None:
        with pytest.raises(ValueError, match="redis"):
            build_preference_store(Settings(preference_store="redis"))
        with pytest.raises(ValueError, match="redis"):
            build_upload_task_store(Settings(upload_task_store="redis"))


class TestBuildSession:
    async def test_wires_pipeline(self) -> None:
        service = FakeRemoteService()
        context = build_session(Settings(local_ocr_engine="pdfplumber"), service=service)

        assert context.service is service
        assert context.session.documents == []

        await context.aclose()
        assert service.closed is True

