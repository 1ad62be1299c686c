from dataclasses import dataclass


@dataclass(frozen=True)
class LocalOcrConfig:
    mime_type: str = "image/jpeg"
    language: str = "eng"
    dpi: int = 300


@dataclass(frozen=True)
class LocalOcrOutput:
    text: str
    confidence: float
    page_count: int = 1

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
