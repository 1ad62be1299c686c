class RemoteServiceError(Exception):
    """Base exception for remote analysis service failures."""


class RemoteResponseValidationError(RemoteServiceError):
    """Raised when a response body does not match the expected shape."""
