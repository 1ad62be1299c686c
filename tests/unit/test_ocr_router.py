import asyncio

import pytest

from labreport.processing.exceptions import (
    AnalysisFailedError,
    OCRFailedError,
    PermissionDeniedError,
    ProcessingCancelledError,
    UploadFailedError,
)
from labreport.processing.models import Document
from labreport.routing.extractors import BaseExtractor, ExtractionListener
from labreport.routing.models import OCRMethod, OCRResult, OCRRoutingConfig
from labreport.routing.router import SmartOCRRouter
from labreport.routing.tracker import PerformanceTracker
from tests.fakes import make_document


class ScriptedExtractor(BaseExtractor):
    def __init__(
        self,
        method: OCRMethod,
        confidence: float = 0.9,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.method = method
        self.confidence = confidence
        self.error = error
        self.delay = delay
        self.calls = 0

    async def extract(self, document: Document, listener: ExtractionListener) -> OCRResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return OCRResult(method=self.method, confidence=self.confidence, quality_score=0.5)


def _router(
    remote: ScriptedExtractor, local: ScriptedExtractor
) -> tuple[SmartOCRRouter, PerformanceTracker]:
    tracker = PerformanceTracker()
    return SmartOCRRouter(remote=remote, local=local, tracker=tracker), tracker


def _config(**overrides: object) -> OCRRoutingConfig:
    values: dict[str, object] = {
        "prefer_remote": True,
        "allow_fallback": True,
        "timeout_seconds": 30.0,
        "quality_threshold": 0.8,
    }
    values.update(overrides)
    return OCRRoutingConfig(**values)  # type: ignore[arg-type]


class TestPrimaryAccepted:
    async def test_confident_remote_never_calls_local(self) -> None:
        remote, local = ScriptedExtractor(OCRMethod.REMOTE, 0.95), ScriptedExtractor(OCRMethod.LOCAL)
        router, _ = _router(remote, local)

        result = await router.route(make_document(), _config())

        assert result.method is OCRMethod.REMOTE
        assert result.is_fallback is False
        assert local.calls == 0

    async def test_prefer_local_tries_local_first(self) -> None:
        remote, local = ScriptedExtractor(OCRMethod.REMOTE), ScriptedExtractor(OCRMethod.LOCAL, 0.85)
        router, _ = _router(remote, local)

        result = await router.route(make_document(), _config(prefer_remote=False))

        assert result.method is OCRMethod.LOCAL
        assert remote.calls == 0

    async def test_records_attempt(self) -> None:
        router, tracker = _router(
            ScriptedExtractor(OCRMethod.REMOTE, 0.95), ScriptedExtractor(OCRMethod.LOCAL)
        )

        await router.route(make_document(), _config())

        analytics = tracker.analytics()
        assert analytics.remote.operations == 1
        assert analytics.remote.success_rate == 1.0


class TestFallback:
    async def test_low_confidence_falls_back_once(self) -> None:
        remote, local = ScriptedExtractor(OCRMethod.REMOTE, 0.5), ScriptedExtractor(OCRMethod.LOCAL, 0.6)
        router, _ = _router(remote, local)

        result = await router.route(make_document(), _config())

        assert result.method is OCRMethod.LOCAL
        assert result.is_fallback is True
        assert result.fallback_reason is not None
        assert "below threshold" in result.fallback_reason
        assert local.calls == 1

    async def test_remote_failure_falls_back(self) -> None:
        remote = ScriptedExtractor(OCRMethod.REMOTE, error=UploadFailedError("offline"))
        local = ScriptedExtractor(OCRMethod.LOCAL, 0.7)
        router, tracker = _router(remote, local)

        result = await router.route(make_document(), _config())

        assert result.is_fallback is True
        assert local.calls == 1
        assert tracker.analytics().remote.success_rate == 0.0

    async def test_remote_timeout_falls_back(self) -> None:
        remote = ScriptedExtractor(OCRMethod.REMOTE, delay=5.0)
        local = ScriptedExtractor(OCRMethod.LOCAL, 0.85)
        router, _ = _router(remote, local)

        result = await router.route(make_document(), _config(timeout_seconds=0.05))

        assert result.method is OCRMethod.LOCAL
        assert result.is_fallback is True
        assert result.fallback_reason is not None
        assert "timed out" in result.fallback_reason

    async def test_low_confidence_without_fallback_keeps_primary(self) -> None:
        remote, local = ScriptedExtractor(OCRMethod.REMOTE, 0.5), ScriptedExtractor(OCRMethod.LOCAL)
        router, _ = _router(remote, local)

        result = await router.route(make_document(), _config(allow_fallback=False))

        assert result.method is OCRMethod.REMOTE
        assert local.calls == 0

    async def test_failed_fallback_keeps_low_confidence_primary(self) -> None:
        remote = ScriptedExtractor(OCRMethod.REMOTE, 0.5)
        local = ScriptedExtractor(OCRMethod.LOCAL, error=OCRFailedError("blurry"))
        router, _ = _router(remote, local)

        result = await router.route(make_document(), _config())

        assert result.method is OCRMethod.REMOTE
        assert result.confidence == 0.5


class TestFailures:
    async def test_failure_without_fallback_is_recoverable(self) -> None:
        remote = ScriptedExtractor(OCRMethod.REMOTE, error=UploadFailedError("offline"))
        local = ScriptedExtractor(OCRMethod.LOCAL)
        router, _ = _router(remote, local)

        with pytest.raises(OCRFailedError) as exc_info:
            await router.route(make_document(), _config(allow_fallback=False))

        assert exc_info.value.recoverable is True
        assert local.calls == 0

    async def test_both_methods_failing(self) -> None:
        remote = ScriptedExtractor(OCRMethod.REMOTE, error=UploadFailedError("offline"))
        local = ScriptedExtractor(OCRMethod.LOCAL, error=OCRFailedError("blurry"))
        router, _ = _router(remote, local)

        with pytest.raises(OCRFailedError, match="All OCR methods failed") as exc_info:
            await router.route(make_document(), _config())

        assert exc_info.value.recoverable is True
        assert "offline" in (exc_info.value.details or "")

    async def test_permission_denied_never_falls_back(self) -> None:
        remote = ScriptedExtractor(OCRMethod.REMOTE, error=PermissionDeniedError("denied"))
        local = ScriptedExtractor(OCRMethod.LOCAL)
        router, _ = _router(remote, local)

        with pytest.raises(PermissionDeniedError):
            await router.route(make_document(), _config())

        assert local.calls == 0

    async def test_rejected_upload_falls_back(self) -> None:
        remote = ScriptedExtractor(
            OCRMethod.REMOTE, error=UploadFailedError("too large", recoverable=False)
        )
        local = ScriptedExtractor(OCRMethod.LOCAL, 0.85)
        router, _ = _router(remote, local)

        result = await router.route(make_document(), _config())

        assert result.method is OCRMethod.LOCAL
        assert result.is_fallback is True
        assert local.calls == 1

    async def test_remote_error_without_fallback_is_wrapped(self) -> None:
        remote = ScriptedExtractor(
            OCRMethod.REMOTE, error=AnalysisFailedError("bad payload", recoverable=False)
        )
        local = ScriptedExtractor(OCRMethod.LOCAL)
        router, _ = _router(remote, local)

        with pytest.raises(OCRFailedError) as exc_info:
            await router.route(make_document(), _config(allow_fallback=False))

        assert exc_info.value.recoverable is True
        assert local.calls == 0

    async def test_missing_local_engine_is_raised(self) -> None:
        remote = ScriptedExtractor(OCRMethod.REMOTE)
        local = ScriptedExtractor(
            OCRMethod.LOCAL, error=OCRFailedError("no engine", recoverable=False)
        )
        router, _ = _router(remote, local)

        with pytest.raises(OCRFailedError) as exc_info:
            await router.route(make_document(), _config(prefer_remote=False))

        assert exc_info.value.recoverable is False
        assert remote.calls == 0

    async def test_remote_cancellation_is_raised(self) -> None:
        remote = ScriptedExtractor(OCRMethod.REMOTE, error=ProcessingCancelledError("cancelled"))
        local = ScriptedExtractor(OCRMethod.LOCAL)
        router, _ = _router(remote, local)

        with pytest.raises(ProcessingCancelledError):
            await router.route(make_document(), _config())

        assert local.calls == 0


class TestRoutingConfig:
    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError, match="timeout"):
            _config(timeout_seconds=0)

    def test_rejects_threshold_out_of_range(self) -> None:
        with pytest.raises(ValueError, match="quality_threshold"):
            _config(quality_threshold=1.2)
