class BiomarkerError(Exception):
    """Base exception for biomarker record operations."""


class BiomarkerNotFoundError(BiomarkerError, KeyError):
    """Raised when an id does not refer to a record in the current set."""
