# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# Every tunable of the service, read from the environment (and `.env` when
# present) by pydantic-settings and validated once at import time.
#
# Required: SUPABASE_URL, SUPABASE_ANON_KEY, SUPABASE_SERVICE_KEY,
#           OPENAI_API_KEY
#
# Usage:
#   from app.config import settings
#   settings.max_image_size_bytes
# =============================================================================

from functools import lru_cache
from typing import Literal
from urllib.parse import urlparse

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str, lower: bool = False) -> list[str]:
    items = [item.strip() for item in value.split(",") if item.strip()]
    return [item.lower() for item in items] if lower else items


class Settings(BaseSettings):
    """Service configuration. Use the module-level `settings` instance."""

    # -------------------------------------------------------------------------
    # Supabase (auth, tables, storage)
    # -------------------------------------------------------------------------

    SUPABASE_URL: str = Field(
        ...,
        description="Project URL, e.g. https://xxx.supabase.co"
    )
    SUPABASE_ANON_KEY: str = Field(
        ...,
        description="Public key; sent together with the caller's JWT so RLS applies"
    )
    SUPABASE_SERVICE_KEY: str = Field(
        ...,
        description="service_role key; only used for health checks and admin sign-out"
    )
    SUPABASE_JWT_SECRET: str = Field(
        default="",
        description="HS256 secret for verifying access tokens (asymmetric keys come from JWKS)"
    )
    STORAGE_BUCKET: str = Field(
        default="images",
        description="Public bucket holding originals, transformed images and attachments"
    )

    # -------------------------------------------------------------------------
    # Change notices
    # -------------------------------------------------------------------------

    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis instance carrying the taskstudio:changes channel"
    )

    # -------------------------------------------------------------------------
    # Image generation
    # -------------------------------------------------------------------------

    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")
    OPENAI_IMAGE_MODEL: str = Field(
        default="gpt-image-1",
        description="Model used by images.edit"
    )

    # -------------------------------------------------------------------------
    # Server
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = Field(
        default=False,
        description="Verbose logging; permission errors are raised where they are reported"
    )
    API_HOST: str = "0.0.0.0"
    API_PORT: int = Field(default=8000, ge=1, le=65535)
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Comma-separated origins allowed in production"
    )

    # -------------------------------------------------------------------------
    # Limits
    # -------------------------------------------------------------------------

    MAX_IMAGE_SIZE_MB: int = Field(default=5, ge=1, le=50)
    ALLOWED_IMAGE_TYPES: str = Field(
        default="image/png,image/jpeg,image/webp",
        description="Comma-separated MIME types accepted by the transform workflow"
    )
    MAX_ATTACHMENT_SIZE_MB: int = Field(default=10, ge=1, le=100)
    DOWNLOAD_RELAY_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Upstream timeout for GET /download"
    )
    DOWNLOAD_ALLOWED_HOSTS: str = Field(
        default="",
        description="Comma-separated hosts the download relay may fetch from; "
        "empty means the Supabase project host only, \"*\" allows any host"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
    )

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def cors_origins_list(self) -> list[str]:
        return _split_csv(self.CORS_ORIGINS)

    @property
    def allowed_image_types_list(self) -> list[str]:
        """e.g. "image/PNG, image/jpeg" -> ["image/png", "image/jpeg"]"""
        return _split_csv(self.ALLOWED_IMAGE_TYPES, lower=True)

    @property
    def max_image_size_bytes(self) -> int:
        return self.MAX_IMAGE_SIZE_MB * 1024 * 1024

    @property
    def max_attachment_size_bytes(self) -> int:
        return self.MAX_ATTACHMENT_SIZE_MB * 1024 * 1024

    @property
    def download_allowed_hosts_list(self) -> list[str]:
        if not self.DOWNLOAD_ALLOWED_HOSTS:
            return [urlparse(self.SUPABASE_URL).hostname or ""]
        return _split_csv(self.DOWNLOAD_ALLOWED_HOSTS, lower=True)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """Parse and validate the environment once."""
    return Settings()


settings = get_settings()
