"""
Shared fixtures for API and retrieval tests.

Storage is never contacted: strategies are replaced by scripted fakes,
httpx.MockTransport, or botocore's Stubber.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

# app.api.main builds a module-level app from the environment on import
os.environ.setdefault("STORAGE_BUCKET", "test-bucket")
os.environ.pop("STORAGE_SERVICE_ACCOUNT_KEY", None)

from app.api.config import Settings
from app.api.main import create_app
from app.api.services.download import DownloadService
from app.api.services.retrieval import Redirect, ResilientFetcher, RetryPolicy
from app.api.services.storage import ServiceAccountCredentials, StorageConfig

from fakes import SleepRecorder


@pytest.fixture
def settings() -> Settings:
    return Settings(
        storage_bucket="test-bucket",
        storage_service_account_key=None,
        service_env="dev",
    )


@pytest.fixture
def storage_config() -> StorageConfig:
    return StorageConfig(
        bucket="test-bucket",
        endpoint_url="https://storage.googleapis.com",
        region="auto",
        public_base_url="https://firebasestorage.googleapis.com/v0/b",
        signed_url_expiry_seconds=3600,
        connect_timeout_seconds=5.0,
        read_timeout_seconds=30.0,
    )


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fetcher(sleep_recorder: SleepRecorder) -> ResilientFetcher:
    return ResilientFetcher(policy=RetryPolicy(), sleep=sleep_recorder)


@pytest.fixture
def make_client(settings: Settings, storage_config: StorageConfig, fetcher: ResilientFetcher):
    """Build a TestClient around a DownloadService using the given strategies."""

    def _make(proxy_strategy, signed_url_strategy=None, config: StorageConfig | None = None):
        service = DownloadService(
            config=config or storage_config,
            fetcher=fetcher,
            proxy_strategy=proxy_strategy,
            signed_url_strategy=signed_url_strategy,
        )
        return TestClient(create_app(settings, download_service=service))

    return _make


@pytest.fixture
def redirect_factory():
    def _make(url: str = "https://storage.example/signed?sig=abc") -> Redirect:
        return Redirect(url=url, expires_at=datetime.now(timezone.utc) + timedelta(hours=1))

    return _make


@pytest.fixture
def signing_config(storage_config: StorageConfig) -> StorageConfig:
    """Storage config carrying privileged credentials."""
    return StorageConfig(
        bucket=storage_config.bucket,
        endpoint_url=storage_config.endpoint_url,
        region=storage_config.region,
        public_base_url=storage_config.public_base_url,
        signed_url_expiry_seconds=3600,
        connect_timeout_seconds=5.0,
        read_timeout_seconds=30.0,
        credentials=ServiceAccountCredentials(
            access_key_id="GOOG1EEXAMPLEKEY",
            secret_access_key="example-secret",
        ),
    )
