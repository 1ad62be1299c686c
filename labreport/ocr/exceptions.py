class LocalOcrError(Exception):
    """Raised when on-device text extraction fails."""


class OcrEngineUnavailableError(LocalOcrError):
    """Raised when the engine's runtime dependency is missing on this machine."""


class UnsupportedInputError(LocalOcrError):
    """Raised when an engine is handed a MIME type it cannot read."""
