class UploadValidationError(ValueError):
    """Raised when a document cannot be scheduled for background upload."""
