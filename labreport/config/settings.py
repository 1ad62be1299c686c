from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    # OCR routing defaults, overridable per user through the preference store
    ocr_prefer_remote: bool = True
    ocr_allow_fallback: bool = True
    ocr_timeout_seconds: float = Field(default=30.0, gt=0)
    ocr_quality_threshold: float = Field(default=0.8, ge=0.0, le=1.0)

    remote_base_url: str = "http://localhost:8000/api/v1"
    remote_api_key: str = ""
    remote_timeout_seconds: int = 60
    status_poll_interval_seconds: float = 2.0
    status_fast_poll_interval_seconds: float = 1.0
    status_max_polling_seconds: float = 300.0
    status_max_retry_attempts: int = 5

    local_ocr_engine: str = "tesseract"
    tesseract_cmd: str = ""
    tesseract_language: str = "eng"

    background_upload_enabled: bool = False
    background_max_concurrent: int = Field(default=3, ge=1)
    background_max_retries: int = Field(default=3, ge=0)
    background_retry_base_seconds: float = 10.0
    background_max_file_size_bytes: int = 5 * 1024 * 1024
    upload_priority_mode: str = "hint"

    large_file_threshold_bytes: int = 1024 * 1024

    preference_store: str = "memory"
    upload_task_store: str = "memory"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "labreport"
    db_username: str = "labreport"
    db_password: str = "secret"
