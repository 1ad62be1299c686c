import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Protocol

from labreport.biomarkers.classification import classify_document
from labreport.biomarkers.extractor import BiomarkerExtractor
from labreport.biomarkers.models import ExtractionMethod
from labreport.logging.logger import Log
from labreport.ocr.base import BaseLocalOcrEngine
from labreport.ocr.exceptions import LocalOcrError, OcrEngineUnavailableError
from labreport.ocr.models import LocalOcrConfig
from labreport.processing.exceptions import OCRFailedError, ProcessingCancelledError
from labreport.processing.models import Document
from labreport.remote.base import BaseRemoteAnalysisService
from labreport.remote.models import AnalysisPreferences, RemoteStatus, StatusUpdate
from labreport.remote.monitor import UploadStatusMonitor
from labreport.routing.models import OCRMethod, OCRResult, quality_score


class ExtractionListener(Protocol):
    """Receives progress from a running extraction. Called on the event loop."""

    def on_report_created(self, document_id: str, report_id: str) -> None: ...

    def on_status(self, document_id: str, update: StatusUpdate) -> None: ...

    def on_progress(self, document_id: str, fraction: float, operation: str) -> None: ...


class NullListener:
    def on_report_created(self, document_id: str, report_id: str) -> None:
        pass

    def on_status(self, document_id: str, update: StatusUpdate) -> None:
        pass

    def on_progress(self, document_id: str, fraction: float, operation: str) -> None:
        pass


class BaseExtractor(ABC):
    """One OCR method the router can attempt."""

    method: OCRMethod

    @abstractmethod
    async def extract(self, document: Document, listener: ExtractionListener) -> OCRResult:
        """Run a single extraction attempt.

        Raises:
            ProcessingError: subclasses describe why the attempt failed and
                whether another method may be tried.
        """


class RemoteExtractor(BaseExtractor):
    """Uploads to the remote service and follows the report through its monitor."""

    method = OCRMethod.REMOTE

    def __init__(
        self,
        service: BaseRemoteAnalysisService,
        monitor: UploadStatusMonitor,
        extractor: BiomarkerExtractor,
        preferences: AnalysisPreferences | None = None,
    ) -> None:
        self._service = service
        self._monitor = monitor
        self._extractor = extractor
        self._preferences = preferences or AnalysisPreferences()

    async def extract(self, document: Document, listener: ExtractionListener) -> OCRResult:
        started = time.monotonic()
        listener.on_progress(document.id, 0.1, "Uploading document")
        receipt = await self._service.upload(document, self._preferences)
        listener.on_report_created(document.id, receipt.report_id)

        channel = self._monitor.start_monitoring(receipt.report_id)
        try:
            async for update in channel:
                listener.on_status(document.id, update)
                if update.status is RemoteStatus.FAILED:
                    raise OCRFailedError(update.error_message or "Remote processing failed")
                if update.status is RemoteStatus.CANCELLED:
                    raise ProcessingCancelledError(
                        f"Report {receipt.report_id} was cancelled remotely"
                    )
                if update.status is RemoteStatus.COMPLETED:
                    break
            else:
                raise OCRFailedError(
                    f"Status stream for report {receipt.report_id} ended before completion"
                )
        finally:
            self._monitor.stop_monitoring(receipt.report_id)

        listener.on_progress(document.id, 0.9, "Retrieving analysis")
        analysis = await self._service.get_analysis(receipt.report_id)
        biomarkers = self._extractor.extract_from_analysis(analysis)
        return OCRResult(
            method=OCRMethod.REMOTE,
            confidence=analysis.confidence,
            biomarkers=tuple(biomarkers),
            extracted_text=analysis.extracted_text,
            quality_score=quality_score(len(analysis.extracted_text), len(biomarkers)),
            processing_time_seconds=time.monotonic() - started,
            document_type=analysis.document_type or classify_document(analysis.extracted_text),
        )


class LocalExtractor(BaseExtractor):
    """Runs the on-device engine in a worker thread and parses its text."""

    method = OCRMethod.LOCAL

    def __init__(
        self,
        engine: BaseLocalOcrEngine,
        extractor: BiomarkerExtractor,
        config: LocalOcrConfig | None = None,
    ) -> None:
        self._engine = engine
        self._extractor = extractor
        self._config = config or LocalOcrConfig()

    async def extract(self, document: Document, listener: ExtractionListener) -> OCRResult:
        started = time.monotonic()
        listener.on_progress(document.id, 0.3, "Running on-device OCR")
        config = replace(self._config, mime_type=document.mime_type)
        try:
            output = await asyncio.to_thread(self._engine.extract, document.payload, config)
        except OcrEngineUnavailableError as exc:
            raise OCRFailedError(
                "On-device OCR is not available", details=str(exc), recoverable=False
            ) from exc
        except LocalOcrError as exc:
            raise OCRFailedError("On-device OCR failed", details=str(exc)) from exc

        biomarkers = self._extractor.parse_text(output.text, ExtractionMethod.OCR_LOCAL)
        Log.debug(
            f"Local OCR of {document.filename} found {len(biomarkers)} biomarkers",
            engine=self._engine.name,
        )
        return OCRResult(
            method=OCRMethod.LOCAL,
            confidence=output.confidence,
            biomarkers=tuple(biomarkers),
            extracted_text=output.text,
            quality_score=quality_score(len(output.text), len(biomarkers)),
            processing_time_seconds=time.monotonic() - started,
            document_type=classify_document(output.text),
        )
