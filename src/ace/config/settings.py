"""Configuration management using Pydantic Settings."""

from pathlib import Path
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    # Generative model API
    google_api_key: Optional[str] = Field(None, description="Google API key for Gemini models")
    api_base_url: str = Field(
        "https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the generateContent endpoint",
    )
    model_id: str = Field("gemini-3-pro-preview", description="Model used for extraction and chat")
    model_temperature: float = Field(0.1, ge=0.0, le=2.0)
    thinking_budget: int = Field(16000, ge=0)
    request_timeout: float = Field(300.0, gt=0)

    # Scheduling
    concurrency_limit: int = Field(2, ge=1, le=5)
    requests_per_minute: float = Field(30.0, gt=0)

    # Retry configuration
    rate_limit_max_attempts: int = Field(3, ge=1, le=10)
    rate_limit_base_delay: float = Field(5.0, ge=0)
    rate_limit_jitter: float = Field(2.0, ge=0)
    malformed_retry_delay: float = Field(2.0, ge=0)

    # Source reading
    min_pdf_text_chars: int = Field(500, ge=0)
    max_pdf_pages: int = Field(50, ge=1)

    # Directories
    output_dir: Path = Field(Path("output"))
    history_db: Path = Field(Path(".cache") / "ace_history.db")

    # Logging
    log_level: str = Field("INFO")
    log_format: str = Field("json", pattern="^(json|text)$")

    @field_validator("output_dir")
    @classmethod
    def _create_dirs(cls, v: Path) -> Path:
        v.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("history_db")
    @classmethod
    def _create_parent(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v


# Instantiate global settings
settings = Settings()
