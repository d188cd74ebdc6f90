"""
Storage configuration.
Owns: Privileged credential parsing, immutable storage config, S3 client construction.

The config is built once at startup and shared read-only by every request.
Missing or malformed credentials never fail startup: the service degrades
to proxying bytes from the public REST endpoint.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config

from app.api.config import Settings

logger = logging.getLogger(__name__)


class CredentialsError(ValueError):
    """Raised when the privileged credentials secret cannot be used."""
    pass


@dataclass(frozen=True)
class ServiceAccountCredentials:
    """HMAC credentials for the store's S3-compatible interoperability API."""
    access_key_id: str
    secret_access_key: str
    endpoint_url: str | None = None
    region: str | None = None

    def __repr__(self) -> str:
        return f"ServiceAccountCredentials(access_key_id={self.access_key_id!r}, secret_access_key='***')"

    @staticmethod
    def from_json(blob: str) -> "ServiceAccountCredentials":
        """
        Parse the credentials secret.

        Expected shape:
            {"access_key_id": "...", "secret_access_key": "...",
             "endpoint_url": "...", "region": "..."}

        Raises:
            CredentialsError: Not JSON, not an object, or missing keys
        """
        try:
            data: Any = json.loads(blob)
        except json.JSONDecodeError as e:
            raise CredentialsError(f"Credentials secret is not valid JSON: {e.msg}")

        if not isinstance(data, dict):
            raise CredentialsError("Credentials secret must be a JSON object")

        missing = [
            key for key in ("access_key_id", "secret_access_key")
            if not isinstance(data.get(key), str) or not data.get(key)
        ]
        if missing:
            raise CredentialsError(f"Credentials secret missing: {', '.join(missing)}")

        return ServiceAccountCredentials(
            access_key_id=data["access_key_id"],
            secret_access_key=data["secret_access_key"],
            endpoint_url=data.get("endpoint_url") or None,
            region=data.get("region") or None,
        )


@dataclass(frozen=True)
class StorageConfig:
    """Immutable configuration for the download path."""
    bucket: str
    endpoint_url: str
    region: str
    public_base_url: str
    signed_url_expiry_seconds: int
    connect_timeout_seconds: float
    read_timeout_seconds: float
    credentials: ServiceAccountCredentials | None = None

    @property
    def has_privileged_credentials(self) -> bool:
        return self.credentials is not None


def load_credentials(blob: str | None) -> ServiceAccountCredentials | None:
    """
    Load privileged credentials, logging and swallowing any failure.

    Returns None when the secret is absent or unusable.
    """
    if not blob:
        logger.info("No privileged storage credentials configured, using proxy downloads")
        return None

    try:
        return ServiceAccountCredentials.from_json(blob)
    except CredentialsError as e:
        logger.error(
            "Privileged storage credentials unusable, falling back to proxy downloads",
            extra={"error_kind": "BACKEND_UNAVAILABLE", "error": str(e)},
        )
        return None


def build_storage_config(settings: Settings) -> StorageConfig:
    credentials = load_credentials(settings.storage_service_account_key)

    endpoint_url = settings.storage_endpoint
    region = settings.storage_region
    if credentials is not None:
        endpoint_url = credentials.endpoint_url or endpoint_url
        region = credentials.region or region

    return StorageConfig(
        bucket=settings.storage_bucket,
        endpoint_url=endpoint_url,
        region=region,
        public_base_url=settings.storage_public_base_url.rstrip("/"),
        signed_url_expiry_seconds=settings.signed_url_expiry_seconds,
        connect_timeout_seconds=settings.storage_connect_timeout_seconds,
        read_timeout_seconds=settings.storage_read_timeout_seconds,
        credentials=credentials,
    )


def create_s3_client(config: StorageConfig):
    """
    Create a boto3 S3 client bound to the privileged credentials.

    botocore's own retries are disabled; ResilientFetcher owns retry policy.

    Raises:
        CredentialsError: Config carries no credentials
    """
    if config.credentials is None:
        raise CredentialsError("Cannot create a signing client without credentials")

    return boto3.client(
        "s3",
        endpoint_url=config.endpoint_url,
        region_name=config.region,
        aws_access_key_id=config.credentials.access_key_id,
        aws_secret_access_key=config.credentials.secret_access_key,
        config=Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            connect_timeout=config.connect_timeout_seconds,
            read_timeout=config.read_timeout_seconds,
            retries={"max_attempts": 1, "mode": "standard"},
        ),
    )
