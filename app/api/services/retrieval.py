"""
Blob retrieval.
Owns: Retrieval strategies, error classification, bounded retry with backoff.

Two transports sit behind one interface:
- SignedUrlStrategy: mint a short-lived presigned GET URL (needs credentials)
- ProxyFetchStrategy: GET the bytes from the public REST endpoint and
  stream them through this service

ResilientFetcher runs either one with exponential backoff on transient
failures and turns every other failure into a terminal Failure outcome.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Protocol, Union
from urllib.parse import quote

import httpx
from botocore.exceptions import (
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
    NoCredentialsError,
    PartialCredentialsError,
)
from starlette.concurrency import run_in_threadpool

from app.api.services.storage import StorageConfig
from shared.logging import hash_object_key
from shared.path_validation import BlobReference, encode_content_disposition

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Retry defaults: delays of 1s, 2s, 4s
MAX_RETRIES = 3
INITIAL_DELAY_MS = 1000

STREAM_CHUNK_SIZE = 64 * 1024


# =============================================================================
# Outcomes
# =============================================================================


class ErrorKind(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    ACCESS_DENIED = "ACCESS_DENIED"
    TRANSIENT = "TRANSIENT"
    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class Redirect:
    """The client should fetch the bytes from url before expires_at."""
    url: str
    expires_at: datetime


@dataclass(frozen=True)
class Bytes:
    """
    The bytes are streamed back by this service.

    close releases the upstream response. It is safe to call more than
    once and must be called even when body is never iterated.
    """
    content_type: str
    length: int | None
    body: AsyncIterator[bytes]
    close: Callable[[], Awaitable[None]] | None = None


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str


RetrievalOutcome = Union[Redirect, Bytes, Failure]


# =============================================================================
# Error classification
# =============================================================================

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "NotFound", "404"})

_ACCESS_DENIED_CODES = frozenset({
    "AccessDenied",
    "Forbidden",
    "Unauthorized",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "401",
    "403",
})

_TRANSIENT_CODES = frozenset({
    "SlowDown",
    "RequestTimeout",
    "ServiceUnavailable",
    "InternalError",
    "Throttling",
    "ThrottlingException",
    "TooManyRequests",
    "408",
    "429",
    "500",
    "502",
    "503",
    "504",
})

_TRANSIENT_STATUS = frozenset({408, 429, 500, 502, 503, 504})

_TRANSIENT_EXCEPTIONS = (
    BotoConnectionError,
    HTTPClientError,
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
)

_TIMEOUT_EXCEPTIONS = (
    httpx.TimeoutException,
    asyncio.TimeoutError,
    TimeoutError,
)


def _classify_status(status: int | None) -> ErrorKind | None:
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status in (401, 403):
        return ErrorKind.ACCESS_DENIED
    if status in _TRANSIENT_STATUS:
        return ErrorKind.TRANSIENT
    return None


def _classify_code(code: str) -> ErrorKind | None:
    if code in _NOT_FOUND_CODES:
        return ErrorKind.NOT_FOUND
    if code in _ACCESS_DENIED_CODES:
        return ErrorKind.ACCESS_DENIED
    if code in _TRANSIENT_CODES:
        return ErrorKind.TRANSIENT
    return None


def classify_message(message: str) -> ErrorKind:
    """
    Last-resort classification by substring.

    Only used when an error carries no structured code or status.
    """
    text = message.lower()

    if "retry-limit-exceeded" in text or "network" in text or "timeout" in text or "timed out" in text:
        return ErrorKind.TRANSIENT

    if (
        "unauthenticated" in text
        or "permission-denied" in text
        or "unauthorized" in text
        or "access denied" in text
    ):
        return ErrorKind.ACCESS_DENIED

    if "object-not-found" in text or "not found" in text:
        return ErrorKind.NOT_FOUND

    return ErrorKind.UNKNOWN


def classify_error(exc: BaseException) -> ErrorKind:
    """
    Map a raw transport error to an ErrorKind.

    Structured information wins: botocore error codes and HTTP status,
    then exception types, then the message text.
    """
    if isinstance(exc, ClientError):
        code = str(exc.response.get("Error", {}).get("Code", ""))
        kind = _classify_code(code)
        if kind is not None:
            return kind
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        kind = _classify_status(status)
        if kind is not None:
            return kind
        return classify_message(str(exc))

    if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
        return ErrorKind.ACCESS_DENIED

    if isinstance(exc, httpx.HTTPStatusError):
        kind = _classify_status(exc.response.status_code)
        return kind if kind is not None else ErrorKind.UNKNOWN

    if isinstance(exc, _TRANSIENT_EXCEPTIONS):
        return ErrorKind.TRANSIENT

    return classify_message(str(exc))


def failure_message(kind: ErrorKind, exc: BaseException) -> str:
    """User-facing message for a terminal failure."""
    if kind is ErrorKind.NOT_FOUND:
        return "File not found in storage. It may have been deleted."
    if kind is ErrorKind.ACCESS_DENIED:
        return "Access denied. Please try logging in again."
    if kind is ErrorKind.TRANSIENT:
        text = str(exc).lower()
        if isinstance(exc, _TIMEOUT_EXCEPTIONS) or "timeout" in text or "retry-limit-exceeded" in text:
            return "Download timed out due to slow connection. Please check your internet and try again."
        return "Network error. Please check your connection and try again."
    return f"Storage error: {str(exc) or type(exc).__name__}"


def describe_error(exc: BaseException) -> str:
    """
    Log-safe summary of a transport error.

    Exception messages can embed the request URL, and with it the object
    key, so only the type and the structured code or status are kept.
    """
    name = type(exc).__name__
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        code = error.get("Code") or status
        return f"{name}: {code}" if code else name
    if isinstance(exc, httpx.HTTPStatusError):
        return f"{name}: {exc.response.status_code}"
    return name


# =============================================================================
# Strategies
# =============================================================================


class RetrievalStrategy(Protocol):
    name: str

    async def retrieve(self, ref: BlobReference) -> Union[Redirect, Bytes]:
        ...


class SignedUrlStrategy:
    """
    Hand the client a time-boxed presigned URL instead of proxying bytes.

    The object is checked with HEAD first so a missing key is reported as
    not-found rather than as a URL that 404s later in the browser.
    """

    name = "signed_url"

    def __init__(self, client, config: StorageConfig):
        self._client = client
        self._config = config

    async def retrieve(self, ref: BlobReference) -> Redirect:
        return await run_in_threadpool(self._mint, ref)

    def _mint(self, ref: BlobReference) -> Redirect:
        self._client.head_object(
            Bucket=self._config.bucket,
            Key=ref.object_key,
        )

        expiry = self._config.signed_url_expiry_seconds
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expiry)

        url = self._client.generate_presigned_url(
            "get_object",
            Params={
                "Bucket": self._config.bucket,
                "Key": ref.object_key,
                "ResponseContentDisposition": encode_content_disposition(ref.display_name),
                "ResponseContentType": DEFAULT_CONTENT_TYPE,
            },
            ExpiresIn=expiry,
        )
        return Redirect(url=url, expires_at=expires_at)


async def _stream_body(response: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.aiter_bytes(STREAM_CHUNK_SIZE):
            yield chunk
    finally:
        # Runs on completion and on client disconnect
        await response.aclose()


def _parse_length(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None


class ProxyFetchStrategy:
    """
    Fetch the object through the store's public REST endpoint and stream it.

    An attempt completes once the response headers arrive; the body is
    streamed lazily by the caller.
    """

    name = "proxy"

    def __init__(self, client: httpx.AsyncClient, config: StorageConfig):
        self._client = client
        self._config = config

    def object_url(self, object_key: str) -> str:
        encoded_key = quote(object_key, safe="")
        return f"{self._config.public_base_url}/{self._config.bucket}/o/{encoded_key}"

    async def retrieve(self, ref: BlobReference) -> Bytes:
        request = self._client.build_request(
            "GET",
            self.object_url(ref.object_key),
            params={"alt": "media"},
            # Identity encoding keeps Content-Length equal to the object size
            headers={"Accept-Encoding": "identity"},
        )
        response = await self._client.send(request, stream=True)

        if response.is_error:
            await response.aclose()
            response.raise_for_status()

        return Bytes(
            content_type=response.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
            length=_parse_length(response.headers.get("content-length")),
            body=_stream_body(response),
            close=response.aclose,
        )


def select_strategy(
    has_privileged_credentials: bool,
    signed_url: RetrievalStrategy | None,
    proxy: RetrievalStrategy,
) -> RetrievalStrategy:
    """Pick the transport for one request from startup capabilities."""
    if has_privileged_credentials and signed_url is not None:
        return signed_url
    return proxy


# =============================================================================
# Fetcher
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = MAX_RETRIES
    initial_delay_ms: int = INITIAL_DELAY_MS

    def delay_seconds(self, retry_count: int) -> float:
        return self.initial_delay_ms * (2 ** retry_count) / 1000


class ResilientFetcher:
    """
    Run a strategy with bounded exponential backoff.

    State per call: Attempting -> Success, or ClassifyFailure ->
    Retrying (transient with budget left) -> Attempting, or Failure.
    Attempts within one call are strictly sequential.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        attempt_timeout_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self.attempt_timeout_seconds = attempt_timeout_seconds
        self._sleep = sleep

    async def _attempt(
        self, strategy: RetrievalStrategy, ref: BlobReference
    ) -> Union[Redirect, Bytes]:
        if self.attempt_timeout_seconds is None:
            return await strategy.retrieve(ref)
        return await asyncio.wait_for(
            strategy.retrieve(ref), timeout=self.attempt_timeout_seconds
        )

    async def fetch(
        self, strategy: RetrievalStrategy, ref: BlobReference
    ) -> RetrievalOutcome:
        key_hash = hash_object_key(ref.object_key)
        retry_count = 0

        while True:
            try:
                return await self._attempt(strategy, ref)
            except Exception as exc:
                kind = classify_error(exc)

                if kind is ErrorKind.TRANSIENT and retry_count < self.policy.max_retries:
                    delay = self.policy.delay_seconds(retry_count)
                    logger.warning(
                        "Download attempt failed, retrying",
                        extra={
                            "object_key_hash": key_hash,
                            "strategy": strategy.name,
                            "attempt": retry_count + 1,
                            "max_retries": self.policy.max_retries,
                            "delay_ms": int(delay * 1000),
                            "error": describe_error(exc),
                        },
                    )
                    await self._sleep(delay)
                    retry_count += 1
                    continue

                logger.warning(
                    "Download failed",
                    extra={
                        "object_key_hash": key_hash,
                        "strategy": strategy.name,
                        "attempt": retry_count + 1,
                        "error_kind": kind.value,
                        "error": describe_error(exc),
                    },
                )
                return Failure(kind=kind, message=failure_message(kind, exc))
