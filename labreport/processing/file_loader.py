from pathlib import Path

from labreport.processing.exceptions import FileReadError, UnsupportedDocumentTypeError
from labreport.processing.models import SUPPORTED_MIME_TYPES, DocumentInput, detect_mime_type


class FileLoader:
    """Reads lab report files from disk into DocumentInput items."""

    def load(self, path: Path) -> DocumentInput:
        """Read a file and detect its MIME type.

        Raises:
            FileNotFoundError: if the file does not exist.
            FileReadError: if the file exists but cannot be read.
            UnsupportedDocumentTypeError: if the file is not an image or PDF.
        """
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        try:
            payload = path.read_bytes()
        except OSError as exc:
            raise FileReadError(f"Cannot read {path}: {exc}") from exc
        mime_type = detect_mime_type(payload, path.name)
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise UnsupportedDocumentTypeError(
                f"'{path.name}' has unsupported type '{mime_type}'"
            )
        return DocumentInput(payload=payload, filename=path.name, mime_type=mime_type)

    def load_many(self, paths: list[Path]) -> list[DocumentInput]:
        return [self.load(path) for path in paths]
