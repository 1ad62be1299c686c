from datetime import datetime, timezone
from enum import Enum


class ErrorType(str, Enum):
    UPLOAD_FAILED = "upload_failed"
    OCR_FAILED = "ocr_failed"
    EXTRACTION_FAILED = "extraction_failed"
    ANALYSIS_FAILED = "analysis_failed"
    NETWORK_ERROR = "network_error"
    SERVER_ERROR = "server_error"
    PERMISSION_DENIED = "permission_denied"
    INVALID_FORMAT = "invalid_format"
    FILE_TOO_LARGE = "file_too_large"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    OTHER = "other"


class ProcessingError(Exception):
    """Base exception for every failure surfaced by the processing pipeline.

    Carries a structured payload so the session can expose it unchanged
    through ``processing_error``.
    """

    error_type: ErrorType = ErrorType.OTHER
    default_recoverable: bool = True

    def __init__(
        self,
        message: str,
        *,
        details: str | None = None,
        recoverable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self.timestamp = datetime.now(timezone.utc)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class UploadFailedError(ProcessingError):
    """Raised when a document cannot be delivered to the remote service."""

    error_type = ErrorType.UPLOAD_FAILED


class OCRFailedError(ProcessingError):
    """Raised when text could not be extracted by any attempted method."""

    error_type = ErrorType.OCR_FAILED


class ExtractionFailedError(ProcessingError):
    """Raised when OCR succeeded but produced no usable biomarkers."""

    error_type = ErrorType.EXTRACTION_FAILED


class AnalysisFailedError(ProcessingError):
    """Raised when the remote analysis payload is missing or malformed."""

    error_type = ErrorType.ANALYSIS_FAILED


class PermissionDeniedError(ProcessingError):
    """Raised when the caller lacks access. Never triggers a fallback."""

    error_type = ErrorType.PERMISSION_DENIED
    default_recoverable = False

    def __init__(
        self,
        message: str,
        *,
        details: str | None = None,
        recovery_suggestion: str = "Check your account permissions and sign in again.",
    ) -> None:
        super().__init__(message, details=details, recoverable=False)
        self.recovery_suggestion = recovery_suggestion


class ProcessingTimeoutError(ProcessingError):
    """Raised when an operation does not finish within its timeout."""

    error_type = ErrorType.TIMEOUT


class ProcessingCancelledError(ProcessingError):
    """Raised when the remote side reports the report as cancelled."""

    error_type = ErrorType.CANCELLED
    default_recoverable = False


class InvalidTransitionError(ValueError):
    """Raised when a workflow operation is invoked from a state that forbids it."""


class FileReadError(Exception):
    """Raised when a document file cannot be read from disk."""


class UnsupportedDocumentTypeError(Exception):
    """Raised when a file is neither an image nor a PDF."""
