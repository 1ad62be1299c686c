import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from labreport.biomarkers.classification import dominant_category
from labreport.biomarkers.extractor import BiomarkerExtractor
from labreport.biomarkers.models import ExtractedBiomarker, HealthCategory
from labreport.biomarkers.record_set import BiomarkerSet
from labreport.config.preferences import BasePreferenceStore, UserPreferences
from labreport.logging.logger import Log
from labreport.processing.exceptions import (
    ExtractionFailedError,
    InvalidTransitionError,
    OCRFailedError,
    ProcessingCancelledError,
    ProcessingError,
)
from labreport.processing.models import (
    TOTAL_WORKFLOW_STEPS,
    Document,
    DocumentInput,
    ProcessingStatus,
    ProcessingSummary,
    WorkflowStep,
)
from labreport.remote.models import RemoteStatus, StatusUpdate
from labreport.remote.monitor import UploadStatusMonitor
from labreport.routing.models import OCRResult, PerformanceAnalytics
from labreport.routing.router import SmartOCRRouter
from labreport.routing.tracker import PerformanceTracker
from labreport.upload.models import UploadPriority, UploadStatus
from labreport.upload.scheduler import BackgroundUploadScheduler

LARGE_FILE_THRESHOLD_BYTES = 1024 * 1024

_REMOTE_TO_DOCUMENT_STATUS = {
    RemoteStatus.UPLOADING: ProcessingStatus.PROCESSING,
    RemoteStatus.PROCESSING: ProcessingStatus.PROCESSING,
    RemoteStatus.ANALYZING: ProcessingStatus.ANALYZING,
}


@dataclass
class ActiveProcessing:
    task: "asyncio.Task[None]"
    report_id: str | None = None


class DocumentSessionManager:
    """Owns the document list and drives one document at a time through the workflow.

    All state lives on the event loop that calls into the manager. Pipeline
    work runs in one asyncio task per document; those tasks report back
    through the ExtractionListener callbacks and their return path, and the
    manager is the only writer of documents, step and progress fields.
    """

    def __init__(
        self,
        router: SmartOCRRouter,
        scheduler: BackgroundUploadScheduler,
        monitor: UploadStatusMonitor,
        tracker: PerformanceTracker,
        preferences: BasePreferenceStore,
        extractor: BiomarkerExtractor | None = None,
        large_file_threshold_bytes: int = LARGE_FILE_THRESHOLD_BYTES,
    ) -> None:
        self._router = router
        self._scheduler = scheduler
        self._monitor = monitor
        self._tracker = tracker
        self._preferences = preferences
        self._extractor = extractor or BiomarkerExtractor()
        self._large_file_threshold = large_file_threshold_bytes

        self.documents: list[Document] = []
        self.selected_document: Document | None = None
        self.current_step = WorkflowStep.SELECT_DOCUMENT
        self.processing_progress = 0.0
        self.current_operation = ""
        self.processing_error: ProcessingError | None = None
        self.processing_summary: ProcessingSummary | None = None
        self.biomarkers = BiomarkerSet()

        self._active: dict[str, ActiveProcessing] = {}
        self._results: dict[str, OCRResult] = {}
        self._background_tasks: list[str] = []

    # -- derived state -------------------------------------------------

    @property
    def is_processing(self) -> bool:
        document = self.selected_document
        return document is not None and document.id in self._active

    @property
    def can_proceed(self) -> bool:
        if self.current_step is WorkflowStep.SELECT_DOCUMENT:
            return self.selected_document is not None
        if self.current_step is WorkflowStep.EXTRACT_BIOMARKERS:
            return len(self.biomarkers) > 0
        return self.current_step is not WorkflowStep.ERROR and not self.is_processing

    @property
    def can_go_back(self) -> bool:
        return self.current_step is not WorkflowStep.SELECT_DOCUMENT

    @property
    def step_progress(self) -> float:
        return self.processing_progress

    @property
    def overall_progress(self) -> float:
        if self.current_step is WorkflowStep.ERROR:
            return 0.0
        completed_steps = self.current_step.step_number - 1
        return min(1.0, (completed_steps + self.step_progress) / TOTAL_WORKFLOW_STEPS)

    def result_for(self, document_id: str) -> OCRResult | None:
        return self._results.get(document_id)

    def documents_with_status(self, status: ProcessingStatus) -> list[Document]:
        return [document for document in self.documents if document.status is status]

    def performance_analytics(self) -> PerformanceAnalytics:
        return self._tracker.analytics()

    # -- document lifecycle --------------------------------------------

    def add_documents(self, items: Sequence[DocumentInput]) -> list[Document]:
        """Create documents from raw inputs without starting any processing."""
        created = [
            Document.from_input(item, sequence=len(self.documents) + i + 1)
            for i, item in enumerate(items)
        ]
        self.documents.extend(created)
        return created

    def select_documents(self, items: Sequence[DocumentInput]) -> list[Document]:
        """Create documents from raw inputs and start processing the first one."""
        created = self.add_documents(items)
        Log.info(f"Selected {len(created)} documents")
        if created:
            self.submit(created[0])
        return created

    def submit(self, document: Document) -> "asyncio.Task[None]":
        """Start processing ``document`` and return its task.

        A document that is already being processed returns its existing task.

        Raises:
            InvalidTransitionError: if the document already reached a terminal status.
        """
        active = self._active.get(document.id)
        if active is not None:
            Log.warning(f"Document {document.id} is already processing")
            return active.task
        if document.status.is_terminal:
            raise InvalidTransitionError(
                f"Document {document.id} is {document.status.value}; use retry_processing"
            )
        if self._find(document.id) is None:
            self.documents.append(document)

        self.selected_document = document
        self.processing_error = None
        self.processing_summary = None
        self.biomarkers.clear()
        self.current_step = WorkflowStep.UPLOAD_DOCUMENT
        self._set_progress(0.0, "Preparing document")

        task = asyncio.create_task(self._run_pipeline(document), name=f"process-{document.id}")
        self._active[document.id] = ActiveProcessing(task=task)
        task.add_done_callback(lambda done: self._release(document.id, done))
        return task

    async def process_document(self, document: Document) -> None:
        """Process ``document`` and wait for the pipeline to settle."""
        task = self.submit(document)
        await asyncio.wait({task})

    def retry_processing(self, document: Document) -> "asyncio.Task[None]":
        """Reset a failed or cancelled document to pending and process it again.

        Raises:
            InvalidTransitionError: if the document is not failed or cancelled.
        """
        if not document.status.can_retry:
            raise InvalidTransitionError(
                f"Only failed or cancelled documents can be retried, got {document.status.value}"
            )
        Log.info(f"Retrying document {document.id}")
        document.status = ProcessingStatus.PENDING
        return self.submit(document)

    def cancel_processing(self) -> None:
        """Cancel every interactive pipeline and its monitor. Background uploads are untouched."""
        for document_id, active in list(self._active.items()):
            active.task.cancel()
            if active.report_id is not None:
                self._monitor.stop_monitoring(active.report_id)
            document = self._find(document_id)
            if document is not None and not document.status.is_terminal:
                document.status = ProcessingStatus.CANCELLED
                Log.info(f"Cancelled processing of document {document_id}")
        self._active.clear()
        self.processing_progress = 0.0
        self.current_operation = ""
        self.current_step = WorkflowStep.SELECT_DOCUMENT

    def remove_document(self, document_id: str) -> None:
        """Drop an idle document and its result, clearing the selection if it was selected."""
        if document_id in self._active:
            raise InvalidTransitionError(f"Document {document_id} is still processing")
        self.documents = [d for d in self.documents if d.id != document_id]
        self._results.pop(document_id, None)
        if self.selected_document is not None and self.selected_document.id == document_id:
            self.reset_for_new_document()

    async def settle(self) -> None:
        """Wait until no interactive pipeline is running."""
        while self._active:
            await asyncio.wait({active.task for active in self._active.values()})

    # -- workflow ------------------------------------------------------

    def proceed_to_next_step(self) -> None:
        """Advance the workflow one step, finalizing the review when leaving validation."""
        step = self.current_step
        if step is WorkflowStep.SELECT_DOCUMENT:
            if self.selected_document is not None:
                self.current_step = step.next_step
            return
        if step is WorkflowStep.EXTRACT_BIOMARKERS and len(self.biomarkers) == 0:
            self.processing_error = ExtractionFailedError(
                "No biomarkers could be extracted from the document",
                details=(
                    "The document may not contain recognizable lab results, "
                    "or the image quality may be too low"
                ),
                recoverable=True,
            )
            self.current_step = WorkflowStep.SELECT_DOCUMENT
            Log.warning("No biomarkers extracted, returning to document selection")
            return
        if step is WorkflowStep.VALIDATE_BIOMARKERS:
            self.current_step = WorkflowStep.COMPLETE
            self._finalize()
            return
        if step is WorkflowStep.COMPLETE:
            self.reset_for_new_document()
            return
        if step is WorkflowStep.ERROR:
            self.processing_error = None
        self.current_step = step.next_step

    def go_to_previous_step(self) -> None:
        """Step back; leaving the processing step cancels the running pipeline."""
        step = self.current_step
        if step is WorkflowStep.PROCESSING:
            self.cancel_processing()
            self.current_step = WorkflowStep.UPLOAD_DOCUMENT
            return
        if step is WorkflowStep.ERROR:
            self.processing_error = None
        self.current_step = step.previous_step

    def reset_for_new_document(self) -> None:
        """Clear the selection and review state and return to document selection."""
        self.current_step = WorkflowStep.SELECT_DOCUMENT
        self.selected_document = None
        self.biomarkers.clear()
        self.processing_summary = None
        self.processing_error = None
        self.processing_progress = 0.0
        self.current_operation = ""

    # -- biomarker review ----------------------------------------------

    def update_biomarker(
        self, biomarker_id: str, new_value: str, new_unit: str | None = None
    ) -> ExtractedBiomarker:
        """Correct a value; the biomarker becomes manually validated."""
        return self.biomarkers.update(biomarker_id, new_value, new_unit)

    def remove_biomarker(self, biomarker_id: str) -> ExtractedBiomarker:
        """Delete a biomarker from the review and return it."""
        return self.biomarkers.remove(biomarker_id)

    def add_manual_biomarker(
        self,
        name: str,
        value: str,
        unit: str | None = None,
        category: HealthCategory | None = None,
    ) -> ExtractedBiomarker:
        """Append a user-entered biomarker with full confidence."""
        return self.biomarkers.add_manual(name, value, unit, category)

    def biomarkers_needing_validation(self) -> list[ExtractedBiomarker]:
        """Low-confidence biomarkers the user should check."""
        return self.biomarkers.needing_validation()

    def high_confidence_biomarkers(self) -> list[ExtractedBiomarker]:
        """Biomarkers at or above the high confidence mark."""
        return self.biomarkers.high_confidence()

    def biomarkers_for_category(self, category: HealthCategory) -> list[ExtractedBiomarker]:
        """Biomarkers tagged with ``category``, in extraction order."""
        return self.biomarkers.for_category(category)

    # -- preferences and background uploads ----------------------------

    def configure_ocr_preferences(
        self,
        *,
        prefer_remote: bool | None = None,
        allow_fallback: bool | None = None,
        timeout_seconds: float | None = None,
        quality_threshold: float | None = None,
    ) -> UserPreferences:
        """Update the routing preferences used by the next submission.

        Only the given fields change. Invalid values raise ValueError and
        leave the stored preferences as they were.
        """
        changes = {
            key: value
            for key, value in {
                "prefer_remote": prefer_remote,
                "allow_fallback": allow_fallback,
                "timeout_seconds": timeout_seconds,
                "quality_threshold": quality_threshold,
            }.items()
            if value is not None
        }
        return self._preferences.update(**changes)

    def set_background_upload_enabled(self, enabled: bool) -> UserPreferences:
        """Turn the background upload offer on or off."""
        return self._preferences.update(background_upload_enabled=enabled)

    def should_offer_background_upload(self, network_is_slow: bool = False) -> bool:
        """Advisory: large file, several documents, or a slow network."""
        if not self._preferences.load().background_upload_enabled:
            return False
        document = self.selected_document
        is_large = document is not None and document.size > self._large_file_threshold
        return is_large or len(self.documents) > 1 or network_is_slow

    def schedule_background_upload(
        self, document: Document, priority: UploadPriority = UploadPriority.NORMAL
    ) -> str:
        """Hand ``document`` to the background scheduler and return the task id.

        Raises:
            UploadValidationError: if the scheduler rejects the document.
        """
        task_id = self._scheduler.schedule(document, priority)
        self._background_tasks.append(task_id)
        self.current_operation = f"Scheduled {document.filename} for background upload"
        return task_id

    def cancel_background_upload(self, task_id: str) -> bool:
        """Cancel one background upload without touching the interactive pipeline."""
        return self._scheduler.cancel(task_id)

    def background_upload_statuses(self) -> list[UploadStatus]:
        """Snapshots of the uploads scheduled from this session."""
        statuses = (self._scheduler.status_of(task_id) for task_id in self._background_tasks)
        return [status for status in statuses if status is not None]

    # -- ExtractionListener --------------------------------------------

    def on_report_created(self, document_id: str, report_id: str) -> None:
        active = self._active.get(document_id)
        if active is not None:
            active.report_id = report_id
        document = self._find(document_id)
        if document is not None:
            document.metadata["report_id"] = report_id
            self._advance(document, ProcessingStatus.PROCESSING)
        if self._is_selected(document_id):
            self._advance_step(WorkflowStep.PROCESSING)

    def on_status(self, document_id: str, update: StatusUpdate) -> None:
        document = self._find(document_id)
        target = _REMOTE_TO_DOCUMENT_STATUS.get(update.status)
        if document is not None and target is not None:
            self._advance(document, target)
        if self._is_selected(document_id):
            self._advance_step(WorkflowStep.OCR_PROCESSING)
            self._set_progress(update.progress_fraction, update.stage.description)

    def on_progress(self, document_id: str, fraction: float, operation: str) -> None:
        if self._is_selected(document_id):
            self._set_progress(fraction, operation)

    # -- pipeline ------------------------------------------------------

    async def _run_pipeline(self, document: Document) -> None:
        try:
            await self._route_and_complete(document)
        finally:
            self._release(document.id, asyncio.current_task())

    async def _route_and_complete(self, document: Document) -> None:
        config = self._preferences.load().routing_config()
        self._advance(document, ProcessingStatus.UPLOADING)
        Log.info(
            f"Processing {document.filename}",
            document=document.id,
            size=document.size,
            prefer_remote=config.prefer_remote,
        )
        try:
            result = await self._router.route(document, config, listener=self)
        except asyncio.CancelledError:
            # A retry may already own the document again.
            if self._owns(document.id) and not document.status.is_terminal:
                document.status = ProcessingStatus.CANCELLED
            raise
        except ProcessingCancelledError as exc:
            document.status = ProcessingStatus.CANCELLED
            self._surface(document, exc)
            return
        except ProcessingError as exc:
            self._fail(document, exc)
            return
        except Exception as exc:
            Log.error(f"Unexpected failure while processing {document.id}: {exc}")
            self._fail(document, OCRFailedError("Unexpected processing failure", details=str(exc)))
            return
        self._complete(document, result)

    def _complete(self, document: Document, result: OCRResult) -> None:
        biomarkers = self._extractor.extract_from_ocr(result)
        document.ocr_confidence = result.confidence
        document.document_type = result.document_type
        document.health_category = dominant_category(biomarkers)
        self._advance(document, ProcessingStatus.COMPLETED)
        self._results[document.id] = result
        Log.info(
            f"Processed {document.filename} via {result.method.value}",
            biomarkers=len(biomarkers),
            confidence=round(result.confidence, 3),
            fallback=result.is_fallback,
        )
        if not self._is_selected(document.id):
            return

        self.biomarkers.replace_all(biomarkers)
        self.processing_summary = self._summarize(document, result)
        self._set_progress(1.0, "Processing completed")
        self.current_step = WorkflowStep.EXTRACT_BIOMARKERS
        self.proceed_to_next_step()

    def _fail(self, document: Document, error: ProcessingError) -> None:
        document.status = ProcessingStatus.FAILED
        Log.error(
            f"Processing {document.filename} failed: {error}",
            error_type=error.error_type.value,
            recoverable=error.recoverable,
        )
        self._surface(document, error)

    def _surface(self, document: Document, error: ProcessingError) -> None:
        if not self._is_selected(document.id):
            return
        self.processing_error = error
        self.current_step = WorkflowStep.ERROR
        self.processing_progress = 0.0
        self.current_operation = ""

    def _finalize(self) -> None:
        if self.processing_summary is None:
            return
        summary = self.biomarkers.summary()
        self.processing_summary = replace(
            self.processing_summary,
            total_extracted=summary.total_extracted,
            high_confidence_count=summary.high_confidence_count,
            categories=summary.categories,
            overall_confidence=(
                summary.average_confidence
                if summary.average_confidence is not None
                else self.processing_summary.overall_confidence
            ),
            completed_at=datetime.now(timezone.utc),
        )
        Log.info(
            "Finalized biomarker review",
            document=self.processing_summary.document_id,
            total=summary.total_extracted,
            confidence=round(self.processing_summary.overall_confidence, 3),
        )

    def _summarize(self, document: Document, result: OCRResult) -> ProcessingSummary:
        summary = self.biomarkers.summary()
        return ProcessingSummary(
            document_id=document.id,
            total_extracted=summary.total_extracted,
            high_confidence_count=summary.high_confidence_count,
            categories=summary.categories,
            method=result.method,
            overall_confidence=result.confidence,
            completed_at=datetime.now(timezone.utc),
            is_fallback=result.is_fallback,
            document_type=result.document_type,
        )

    # -- helpers -------------------------------------------------------

    def _release(self, document_id: str, task: "asyncio.Task[None] | None") -> None:
        active = self._active.get(document_id)
        if active is not None and active.task is task:
            del self._active[document_id]

    def _owns(self, document_id: str) -> bool:
        active = self._active.get(document_id)
        return active is not None and active.task is asyncio.current_task()

    def _find(self, document_id: str) -> Document | None:
        for document in self.documents:
            if document.id == document_id:
                return document
        return None

    def _is_selected(self, document_id: str) -> bool:
        return self.selected_document is not None and self.selected_document.id == document_id

    def _advance(self, document: Document, status: ProcessingStatus) -> None:
        if document.status.can_advance_to(status):
            document.status = status
        else:
            Log.debug(
                f"Ignoring status change {document.status.value} -> {status.value}",
                document=document.id,
            )

    def _advance_step(self, step: WorkflowStep) -> None:
        if self.current_step is WorkflowStep.ERROR:
            return
        if step.step_number > self.current_step.step_number:
            self.current_step = step

    def _set_progress(self, fraction: float, operation: str) -> None:
        self.processing_progress = min(1.0, max(0.0, fraction))
        self.current_operation = operation
