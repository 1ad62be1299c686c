import asyncio
import time
from dataclasses import replace

from labreport.logging.logger import Log
from labreport.processing.exceptions import (
    OCRFailedError,
    PermissionDeniedError,
    ProcessingCancelledError,
    ProcessingError,
)
from labreport.processing.models import Document
from labreport.routing.extractors import BaseExtractor, ExtractionListener, NullListener
from labreport.routing.models import OCRMethod, OCRResult, OCRRoutingConfig
from labreport.routing.tracker import PerformanceTracker


class SmartOCRRouter:
    """Chooses between remote and local extraction with a single fallback.

    The preferred method is tried first under ``timeout_seconds``. Its result
    is kept when confidence reaches ``quality_threshold``; otherwise, if
    fallback is allowed, the other method runs once and its result is
    accepted as is. Permission errors, cancellation and a missing on-device
    engine are raised straight away; any other remote failure falls back.
    """

    def __init__(
        self,
        remote: BaseExtractor,
        local: BaseExtractor,
        tracker: PerformanceTracker,
    ) -> None:
        self._remote = remote
        self._local = local
        self._tracker = tracker

    async def route(
        self,
        document: Document,
        config: OCRRoutingConfig,
        listener: ExtractionListener | None = None,
    ) -> OCRResult:
        listener = listener or NullListener()
        if config.prefer_remote:
            primary, secondary = self._remote, self._local
        else:
            primary, secondary = self._local, self._remote
        errors: list[str] = []

        first = await self._attempt(primary, document, config, listener, errors)
        if first is not None and first.confidence >= config.quality_threshold:
            return first

        if not config.allow_fallback:
            if first is not None:
                Log.warning(
                    f"{primary.method.value} result below threshold and fallback disabled",
                    confidence=round(first.confidence, 3),
                    document=document.id,
                )
                return first
            raise OCRFailedError(
                "OCR failed and fallback is disabled", details="; ".join(errors), recoverable=True
            )

        reason = (
            f"{primary.method.value} confidence {first.confidence:.2f} below threshold"
            if first is not None
            else errors[-1]
        )
        Log.info(
            f"Falling back to {secondary.method.value} OCR: {reason}", document=document.id
        )
        listener.on_progress(document.id, 0.5, f"Falling back to {secondary.method.value} OCR")
        second = await self._attempt(secondary, document, config, listener, errors)
        if second is not None:
            return replace(second, is_fallback=True, fallback_reason=reason)
        if first is not None:
            Log.warning(
                f"Fallback failed, keeping low-confidence {primary.method.value} result",
                document=document.id,
            )
            return first
        raise OCRFailedError(
            "All OCR methods failed", details="; ".join(errors), recoverable=True
        )

    async def _attempt(
        self,
        extractor: BaseExtractor,
        document: Document,
        config: OCRRoutingConfig,
        listener: ExtractionListener,
        errors: list[str],
    ) -> OCRResult | None:
        method = extractor.method
        started = time.monotonic()
        Log.info(f"Attempting {method.value} OCR", document=document.id)
        try:
            result = await asyncio.wait_for(
                extractor.extract(document, listener), timeout=config.timeout_seconds
            )
        except asyncio.TimeoutError:
            self._record_failure(extractor, started, document)
            errors.append(f"{method.value} timed out after {config.timeout_seconds}s")
            Log.warning(errors[-1], document=document.id)
            return None
        except (PermissionDeniedError, ProcessingCancelledError):
            self._record_failure(extractor, started, document)
            raise
        except ProcessingError as exc:
            self._record_failure(extractor, started, document)
            if not exc.recoverable and method is OCRMethod.LOCAL:
                # on-device capability is missing
                raise
            errors.append(f"{method.value}: {exc}")
            Log.warning(f"{method.value} OCR failed: {exc}", document=document.id)
            return None

        latency = time.monotonic() - started
        self._tracker.record(
            method,
            latency_seconds=latency,
            success=True,
            quality=result.quality_score,
            document_size=document.size,
        )
        return replace(result, processing_time_seconds=latency)

    def _record_failure(self, extractor: BaseExtractor, started: float, document: Document) -> None:
        self._tracker.record(
            extractor.method,
            latency_seconds=time.monotonic() - started,
            success=False,
            document_size=document.size,
        )
