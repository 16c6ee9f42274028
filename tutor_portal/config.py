"""
Configuration and settings for the tutor portal.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the API service and autosave clients."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # "development" enables verbose logging and dev-only conveniences.
    environment: Literal["development", "production"] = Field(
        default="development"
    )
    log_level: Optional[str] = Field(default=None)

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible storage for application documents
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    s3_addressing_style: str = Field(default="auto")
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    max_document_bytes: int = Field(default=5 * 1024 * 1024)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Auth
    jwt_secret_key: str = Field(default="dev-secret-change-me")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60 * 24)
    reset_token_expire_minutes: int = Field(default=60)
    bcrypt_rounds: int = Field(default=12)

    # Autosave client
    portal_api_url: str = Field(default="http://localhost:8000")
    autosave_debounce_ms: int = Field(default=900)
    autosave_throttle_ms: int = Field(default=2000)
    autosave_status_reset_ms: int = Field(default=3000)
    autosave_fallback_dir: str = Field(default=".autosave")

    # Shared fallback store (Redis), used instead of files when configured
    redis_url: Optional[str] = Field(default=None)
    redis_key_prefix: str = Field(default="tutor_portal:")

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
