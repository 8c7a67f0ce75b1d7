"""
Configuration and settings for the SnapBox backend.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Annotated, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_ALLOWED_UPLOAD_TYPES = [
    "image/jpeg",
    "image/png",
    "image/webp",
    "video/mp4",
    "video/quicktime",
]


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3010)
    log_level: str = Field(default="INFO")

    # CORS origin(s) for the SPA; comma separated. Unset allows any origin.
    frontend_url: Optional[str] = None
    # Built SPA directory served with history fallback.
    frontend_build_dir: Optional[str] = None

    # Database (BaaS Postgres; any SQLAlchemy URL works)
    database_url: Optional[str] = None

    # S3-compatible object storage
    storage_bucket: str = Field(default="images")
    storage_endpoint: Optional[str] = None
    storage_region: Optional[str] = None
    storage_access_key_id: Optional[str] = None
    storage_secret_access_key: Optional[str] = None
    storage_public_url: Optional[str] = None
    storage_addressing_style: str = Field(default="path")

    # Uploads
    max_upload_bytes: int = Field(default=25 * 1024 * 1024)
    # Comma separated ("image/png,image/jpeg") or a JSON list.
    allowed_upload_types: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_UPLOAD_TYPES)
    )

    # SMTP relay
    email_host: Optional[str] = None
    email_port: int = Field(default=587)
    email_user: Optional[str] = None
    email_pass: Optional[str] = None
    email_sender_name: str = Field(default="SnapBox")
    email_timeout_seconds: float = Field(default=30.0)

    # Verification codes / sessions
    allowed_email_domain: str = Field(default="@fcbhealth.com")
    verification_code_ttl_seconds: int = Field(default=5 * 60)
    jwt_secret: str = Field(default="your_secret_key")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_seconds: int = Field(default=60 * 60)
    min_password_length: int = Field(default=8)

    # Redis (shared verification-code store)
    redis_url: Optional[str] = None
    redis_code_prefix: str = Field(default="snapbox:code:")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="SNAPBOX_USE_IN_MEMORY_BACKENDS"
    )

    # Daily cleanup job
    cleanup_enabled: bool = Field(default=False)
    cleanup_hour: int = Field(default=3, ge=0, le=23)
    cleanup_minute: int = Field(default=0, ge=0, le=59)
    cleanup_timezone: str = Field(default="UTC")
    upload_retention_days: int = Field(default=0, ge=0)

    @field_validator("allowed_upload_types", mode="before")
    @classmethod
    def _split_upload_types(cls, value):
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                return json.loads(text)
            return [t.strip() for t in text.split(",") if t.strip()]
        return value

    def cors_origins(self) -> list[str]:
        if not self.frontend_url:
            return ["*"]
        return [o.strip() for o in self.frontend_url.split(",") if o.strip()]

    def resolved_public_url(self) -> str:
        if self.storage_public_url:
            return self.storage_public_url.rstrip("/")
        endpoint = (self.storage_endpoint or "").rstrip("/")
        return f"{endpoint}/{self.storage_bucket}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
