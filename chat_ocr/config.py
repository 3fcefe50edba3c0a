"""
Configuration management for the chat OCR service.
Loads environment variables with validation.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # =============================================================================
    # Primary OCR (Google Cloud Vision)
    # =============================================================================
    google_vision_api_key: Optional[str] = None
    google_vision_enabled: bool = True
    google_vision_endpoint: str = "https://vision.googleapis.com/v1"

    # =============================================================================
    # Fallback OCR (Tesseract)
    # =============================================================================
    ocr_fallback_enabled: bool = True
    tesseract_cmd: str = "/usr/bin/tesseract"  # Docker/Linux default path
    tesseract_languages: str = "fra+eng"
    pdf_max_pages: int = Field(default=10, gt=0)
    pdf_render_dpi: int = 300

    # =============================================================================
    # Quota & Limits
    # =============================================================================
    ocr_monthly_quota: int = Field(default=1000, gt=0)
    ocr_max_file_size_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    ocr_accept_images: bool = True
    ocr_batch_concurrency: int = Field(default=3, gt=0)
    ocr_backend_timeout_seconds: float = 60.0
    ocr_document_timeout_seconds: float = 180.0

    # =============================================================================
    # Quota persistence
    # =============================================================================
    quota_store: Literal["memory", "supabase"] = "memory"
    quota_scope: str = "global"
    next_public_supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None

    # =============================================================================
    # Deployment Configuration
    # =============================================================================
    port: int = 8001
    log_level: Literal["debug", "info", "warning", "error"] = "info"
    environment: Literal["development", "staging", "production"] = "development"

    @property
    def has_google_vision_key(self) -> bool:
        """Primary backend is only usable with a non-empty API key."""
        return bool(self.google_vision_api_key and self.google_vision_api_key.strip())

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


class OCRConfig(BaseModel):
    """
    Static configuration snapshot for the OCR manager.

    Read-only after construction. Built from Settings at startup, or
    directly in tests.
    """

    model_config = {"frozen": True}

    google_vision_enabled: bool = True
    monthly_quota: int = Field(default=1000, gt=0)
    fallback_enabled: bool = True
    max_file_size: int = Field(default=10 * 1024 * 1024, gt=0)
    accept_images: bool = True
    batch_concurrency: int = Field(default=3, gt=0)
    backend_timeout_seconds: float = 60.0
    document_timeout_seconds: float = 180.0

    @classmethod
    def from_settings(cls, source: Settings) -> "OCRConfig":
        """Snapshot the OCR-related part of the environment settings."""
        return cls(
            google_vision_enabled=source.google_vision_enabled and source.has_google_vision_key,
            monthly_quota=source.ocr_monthly_quota,
            fallback_enabled=source.ocr_fallback_enabled,
            max_file_size=source.ocr_max_file_size_bytes,
            accept_images=source.ocr_accept_images,
            batch_concurrency=source.ocr_batch_concurrency,
            backend_timeout_seconds=source.ocr_backend_timeout_seconds,
            document_timeout_seconds=source.ocr_document_timeout_seconds,
        )


# Global settings instance
settings = Settings()
