"""
Configuration module.
Owns: Environment variables, settings validation.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Project root
BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    # ======================
    # Object storage
    # ======================
    storage_bucket: str = Field(..., alias="STORAGE_BUCKET")
    storage_service_account_key: str | None = Field(
        default=None,
        alias="STORAGE_SERVICE_ACCOUNT_KEY",
        description="JSON secret with privileged HMAC credentials. "
                    "If unset, downloads are proxied through the public REST endpoint.",
    )
    storage_endpoint: str = Field(
        default="https://storage.googleapis.com",
        alias="STORAGE_ENDPOINT",
        description="S3-compatible interoperability endpoint used for signed URLs",
    )
    storage_region: str = Field(default="auto", alias="STORAGE_REGION")
    storage_public_base_url: str = Field(
        default="https://firebasestorage.googleapis.com/v0/b",
        alias="STORAGE_PUBLIC_BASE_URL",
        description="REST base URL for unauthenticated object reads",
    )
    storage_connect_timeout_seconds: float = Field(
        default=10.0, alias="STORAGE_CONNECT_TIMEOUT_SECONDS"
    )
    storage_read_timeout_seconds: float = Field(
        default=60.0, alias="STORAGE_READ_TIMEOUT_SECONDS"
    )

    # ======================
    # Downloads
    # ======================
    signed_url_expiry_seconds: int = Field(
        default=3600, alias="SIGNED_URL_EXPIRY_SECONDS"
    )
    download_max_retries: int = Field(default=3, ge=0, alias="DOWNLOAD_MAX_RETRIES")
    download_initial_delay_ms: int = Field(
        default=1000, ge=0, alias="DOWNLOAD_INITIAL_DELAY_MS"
    )
    download_attempt_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        alias="DOWNLOAD_ATTEMPT_TIMEOUT_SECONDS",
        description="Upper bound for one backend attempt (headers only for proxied bytes)",
    )

    # ======================
    # Service
    # ======================
    service_env: str = Field(default="dev", alias="SERVICE_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_origin: str = Field(default="*", alias="CORS_ORIGIN")
    ping_message: str = Field(default="ping", alias="PING_MESSAGE")

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
