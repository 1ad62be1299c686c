from abc import ABC, abstractmethod
from dataclasses import dataclass, replace

from labreport.config.settings import Settings
from labreport.routing.models import OCRRoutingConfig


@dataclass(frozen=True)
class UserPreferences:
    prefer_remote: bool = True
    allow_fallback: bool = True
    timeout_seconds: float = 30.0
    quality_threshold: float = 0.8
    background_upload_enabled: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "UserPreferences":
        return cls(
            prefer_remote=settings.ocr_prefer_remote,
            allow_fallback=settings.ocr_allow_fallback,
            timeout_seconds=settings.ocr_timeout_seconds,
            quality_threshold=settings.ocr_quality_threshold,
            background_upload_enabled=settings.background_upload_enabled,
        )

    def routing_config(self) -> OCRRoutingConfig:
        return OCRRoutingConfig(
            prefer_remote=self.prefer_remote,
            allow_fallback=self.allow_fallback,
            timeout_seconds=self.timeout_seconds,
            quality_threshold=self.quality_threshold,
        )


class BasePreferenceStore(ABC):
    """Persistent source of router defaults and background-upload opt-in."""

    @abstractmethod
    def load(self) -> UserPreferences:
        """Return the stored preferences, falling back to defaults."""

    @abstractmethod
    def save(self, preferences: UserPreferences) -> None:
        """Persist preferences."""

    def update(self, **changes: object) -> UserPreferences:
        """Apply ``changes`` to the stored preferences and persist the result."""
        updated = replace(self.load(), **changes)  # type: ignore[arg-type]
        updated.routing_config()  # raises ValueError on an invalid timeout or threshold
        self.save(updated)
        return updated


class InMemoryPreferenceStore(BasePreferenceStore):
    def __init__(self, defaults: UserPreferences | None = None) -> None:
        self._preferences = defaults or UserPreferences()

    def load(self) -> UserPreferences:
        return self._preferences

    def save(self, preferences: UserPreferences) -> None:
        self._preferences = preferences
