from abc import ABC, abstractmethod

from labreport.ocr.models import LocalOcrConfig, LocalOcrOutput


class BaseLocalOcrEngine(ABC):
    """Contract for all on-device text extraction engines."""

    name: str = "base"

    @abstractmethod
    def extract(self, image_bytes: bytes, config: LocalOcrConfig) -> LocalOcrOutput:
        """Extract text and a confidence estimate from an image or PDF.

        Args:
            image_bytes: Raw document content.
            config: MIME type of the content and engine options.

        Returns:
            Extracted text with a confidence in [0, 1].

        Raises:
            LocalOcrError: if extraction fails for any reason.
        """
