"""
Download service.
Owns: The download flow (validate -> select transport -> fetch -> fallback).

Constructed once at startup with explicit collaborators and stored on
app.state; nothing here is lazily initialized or mutated per request.
"""

import logging

import httpx

from app.api.config import Settings
from app.api.services.retrieval import (
    ErrorKind,
    Failure,
    ProxyFetchStrategy,
    ResilientFetcher,
    RetrievalOutcome,
    RetrievalStrategy,
    RetryPolicy,
    SignedUrlStrategy,
    select_strategy,
)
from app.api.services.storage import (
    StorageConfig,
    build_storage_config,
    create_s3_client,
)
from shared.logging import hash_object_key
from shared.path_validation import (
    DEFAULT_DISPLAY_NAME,
    PathValidationError,
    validate_blob_reference,
)

logger = logging.getLogger(__name__)

# Signed-URL failures that point at credentials or signing, not the object
FALLBACK_KINDS = frozenset({ErrorKind.ACCESS_DENIED, ErrorKind.UNKNOWN})


class DownloadService:
    def __init__(
        self,
        config: StorageConfig,
        fetcher: ResilientFetcher,
        proxy_strategy: RetrievalStrategy,
        signed_url_strategy: RetrievalStrategy | None = None,
    ):
        self.config = config
        self.fetcher = fetcher
        self.proxy_strategy = proxy_strategy
        self.signed_url_strategy = signed_url_strategy

    async def retrieve(
        self,
        storage_path: object,
        file_name: object = None,
        correlation_id: str | None = None,
    ) -> RetrievalOutcome:
        """
        Resolve one download request.

        Args:
            storage_path: Caller-supplied object key
            file_name: Name the browser should save as (defaults to "download")
            correlation_id: Request correlation ID for logs

        Returns:
            Redirect, Bytes, or Failure. Invalid input is a Failure with
            kind INVALID_INPUT and no storage call is made.
        """
        display_name = DEFAULT_DISPLAY_NAME if file_name is None else file_name

        try:
            ref = validate_blob_reference(storage_path, display_name)
        except PathValidationError as e:
            return Failure(kind=ErrorKind.INVALID_INPUT, message=str(e))

        strategy = select_strategy(
            self.config.has_privileged_credentials,
            self.signed_url_strategy,
            self.proxy_strategy,
        )
        outcome = await self.fetcher.fetch(strategy, ref)

        if (
            isinstance(outcome, Failure)
            and outcome.kind in FALLBACK_KINDS
            and strategy is not self.proxy_strategy
        ):
            logger.warning(
                "Signed URL unavailable, falling back to proxy download",
                extra={
                    "object_key_hash": hash_object_key(ref.object_key),
                    "correlation_id": correlation_id,
                    "error_kind": outcome.kind.value,
                },
            )
            strategy = self.proxy_strategy
            outcome = await self.fetcher.fetch(strategy, ref)

        logger.info(
            "Download resolved",
            extra={
                "object_key_hash": hash_object_key(ref.object_key),
                "correlation_id": correlation_id,
                "strategy": strategy.name,
                "error_kind": outcome.kind.value if isinstance(outcome, Failure) else None,
            },
        )
        return outcome


def build_download_service(
    settings: Settings,
    http_client: httpx.AsyncClient,
) -> DownloadService:
    """
    Wire the download flow from settings.

    A signing client is only created when credentials parsed cleanly;
    otherwise every request uses the proxy transport.
    """
    config = build_storage_config(settings)

    signed_url_strategy = None
    if config.has_privileged_credentials:
        signed_url_strategy = SignedUrlStrategy(create_s3_client(config), config)

    fetcher = ResilientFetcher(
        policy=RetryPolicy(
            max_retries=settings.download_max_retries,
            initial_delay_ms=settings.download_initial_delay_ms,
        ),
        attempt_timeout_seconds=settings.download_attempt_timeout_seconds,
    )

    logger.info(
        "Download service configured",
        extra={"strategy": "signed_url" if signed_url_strategy else "proxy"},
    )

    return DownloadService(
        config=config,
        fetcher=fetcher,
        proxy_strategy=ProxyFetchStrategy(http_client, config),
        signed_url_strategy=signed_url_strategy,
    )


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Async HTTP client for proxied downloads."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=settings.storage_connect_timeout_seconds,
            read=settings.storage_read_timeout_seconds,
            write=settings.storage_read_timeout_seconds,
            pool=5.0,
        ),
        follow_redirects=True,
        headers={"User-Agent": "PinpinStorageAPI/1.0"},
    )
