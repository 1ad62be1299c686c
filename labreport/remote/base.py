from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from labreport.processing.models import Document
from labreport.remote.models import AnalysisPayload, AnalysisPreferences, StatusUpdate, UploadReceipt


class BaseRemoteAnalysisService(ABC):
    """Contract for the remote extraction and analysis service."""

    @abstractmethod
    async def upload(self, document: Document, preferences: AnalysisPreferences) -> UploadReceipt:
        """Upload a document for remote processing.

        Raises:
            UploadFailedError: if the upload does not reach the service.
            PermissionDeniedError: if the service rejects the credentials.
        """

    @abstractmethod
    def status_stream(self, report_id: str) -> AsyncIterator[StatusUpdate]:
        """Yield status updates until the report reaches a terminal status.

        Raises:
            OCRFailedError: if status can no longer be fetched.
            ProcessingTimeoutError: if the report never settles.
        """

    @abstractmethod
    async def get_analysis(self, report_id: str) -> AnalysisPayload:
        """Fetch the completed analysis of a report.

        Raises:
            AnalysisFailedError: if the analysis is missing or malformed.
        """

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""
