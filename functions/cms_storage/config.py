"""
Configuration and settings for the storage admin service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    environment: str = Field(default="development")
    log_level: str = Field(default="info")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    # token -> uid, only honoured with in-memory backends
    dev_tokens: dict[str, str] = Field(default_factory=dict)

    storage_backend: Literal["firebase", "s3"] = Field(default="firebase")

    # Firebase service account
    firebase_app_name: str = Field(default="[DEFAULT]")
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_private_key_id: Optional[str] = Field(default=None)
    firebase_private_key: Optional[str] = Field(default=None)
    firebase_client_email: Optional[str] = Field(default=None)
    firebase_client_id: Optional[str] = Field(default=None)
    firebase_client_x509_cert_url: Optional[str] = Field(default=None)
    firebase_storage_bucket: Optional[str] = Field(default=None)

    # S3-compatible storage
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Folder batching
    delete_batch_size: int = Field(default=50, ge=1)
    move_batch_size: int = Field(default=20, ge=1)
    delete_batch_delay_seconds: float = Field(default=0.1, ge=0)
    move_batch_delay_seconds: float = Field(default=0.2, ge=0)

    # Existing clients expect out-of-namespace paths to surface as 500.
    access_denied_status_code: int = Field(default=500)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
