"""
Tests for the signed-URL and proxy transports and strategy selection.

The S3 client is a real boto3 client wrapped in botocore's Stubber; the
proxy transport runs against httpx.MockTransport.
"""

import json
import logging
from datetime import datetime, timezone
from urllib.parse import parse_qs, quote, urlparse

import httpx
import pytest
from botocore.exceptions import ClientError
from botocore.stub import Stubber

from app.api.services.retrieval import (
    DEFAULT_CONTENT_TYPE,
    Bytes,
    ErrorKind,
    Failure,
    ProxyFetchStrategy,
    Redirect,
    ResilientFetcher,
    SignedUrlStrategy,
    select_strategy,
)
from app.api.services.storage import (
    StorageConfig,
    create_s3_client,
)
from shared.logging import StructuredFormatter
from shared.path_validation import BlobReference, encode_content_disposition

from fakes import ScriptedStrategy, SleepRecorder

REF = BlobReference(object_key="users/abc/quarterly report.pdf", display_name="quarterly report.pdf")


@pytest.fixture
def s3_client(signing_config: StorageConfig):
    return create_s3_client(signing_config)


def head_params(ref: BlobReference = REF) -> dict:
    return {"Bucket": "test-bucket", "Key": ref.object_key}


# ============================================================================
# SignedUrlStrategy
# ============================================================================


@pytest.mark.asyncio
async def test_signed_url_is_scoped_to_object(s3_client, signing_config: StorageConfig):
    strategy = SignedUrlStrategy(s3_client, signing_config)

    with Stubber(s3_client) as stubber:
        stubber.add_response("head_object", {"ContentLength": 12}, head_params())
        before = datetime.now(timezone.utc)
        outcome = await strategy.retrieve(REF)
        stubber.assert_no_pending_responses()

    assert isinstance(outcome, Redirect)
    assert 3595 <= (outcome.expires_at - before).total_seconds() <= 3605

    url = urlparse(outcome.url)
    query = parse_qs(url.query)
    assert url.netloc == "storage.googleapis.com"
    assert url.path == "/test-bucket/users/abc/quarterly%20report.pdf"
    assert query["X-Amz-Expires"] == ["3600"]
    assert query["response-content-type"] == [DEFAULT_CONTENT_TYPE]
    assert query["response-content-disposition"] == [encode_content_disposition(REF.display_name)]


@pytest.mark.asyncio
async def test_signed_url_missing_object_raises_client_error(s3_client, signing_config: StorageConfig):
    strategy = SignedUrlStrategy(s3_client, signing_config)

    with Stubber(s3_client) as stubber:
        stubber.add_client_error(
            "head_object",
            service_error_code="404",
            service_message="Not Found",
            http_status_code=404,
            expected_params=head_params(),
        )
        with pytest.raises(ClientError):
            await strategy.retrieve(REF)


@pytest.mark.asyncio
async def test_signed_url_not_found_through_fetcher(s3_client, signing_config: StorageConfig):
    sleeps = SleepRecorder()
    fetcher = ResilientFetcher(sleep=sleeps)
    strategy = SignedUrlStrategy(s3_client, signing_config)

    with Stubber(s3_client) as stubber:
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        outcome = await fetcher.fetch(strategy, REF)
        stubber.assert_no_pending_responses()

    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.NOT_FOUND
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_signed_url_retries_slow_down(s3_client, signing_config: StorageConfig):
    sleeps = SleepRecorder()
    fetcher = ResilientFetcher(sleep=sleeps)
    strategy = SignedUrlStrategy(s3_client, signing_config)

    with Stubber(s3_client) as stubber:
        stubber.add_client_error("head_object", service_error_code="SlowDown", http_status_code=503)
        stubber.add_response("head_object", {"ContentLength": 12}, head_params())
        outcome = await fetcher.fetch(strategy, REF)
        stubber.assert_no_pending_responses()

    assert isinstance(outcome, Redirect)
    assert sleeps.delays == [1.0]


# ============================================================================
# ProxyFetchStrategy
# ============================================================================


def proxy_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_proxy_object_url_encodes_key(storage_config: StorageConfig):
    strategy = ProxyFetchStrategy(proxy_client(lambda request: httpx.Response(200)), storage_config)
    assert strategy.object_url("users/abc/a b.pdf") == (
        "https://firebasestorage.googleapis.com/v0/b/test-bucket/o/users%2Fabc%2Fa%20b.pdf"
    )


@pytest.mark.asyncio
async def test_proxy_streams_object(storage_config: StorageConfig):
    payload = b"%PDF-1.7\n" + bytes(range(256)) * 512
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=payload, headers={"Content-Type": "application/pdf"})

    async with proxy_client(handler) as client:
        outcome = await ProxyFetchStrategy(client, storage_config).retrieve(REF)

        assert isinstance(outcome, Bytes)
        assert outcome.content_type == "application/pdf"
        assert outcome.length == len(payload)
        body = b"".join([chunk async for chunk in outcome.body])

    assert body == payload
    assert seen[0].url.raw_path == b"/v0/b/test-bucket/o/users%2Fabc%2Fquarterly%20report.pdf?alt=media"
    assert seen[0].headers["Accept-Encoding"] == "identity"


@pytest.mark.asyncio
async def test_proxy_defaults_content_type(storage_config: StorageConfig):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"raw")

    async with proxy_client(handler) as client:
        outcome = await ProxyFetchStrategy(client, storage_config).retrieve(REF)
        assert outcome.content_type == DEFAULT_CONTENT_TYPE
        assert outcome.length == 3
        await outcome.close()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,expected",
    [(404, ErrorKind.NOT_FOUND), (403, ErrorKind.ACCESS_DENIED), (503, ErrorKind.TRANSIENT)],
)
async def test_proxy_error_status_through_fetcher(storage_config: StorageConfig, status: int, expected: ErrorKind):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(status, json={"error": {"code": status}})

    fetcher = ResilientFetcher(sleep=SleepRecorder())
    async with proxy_client(handler) as client:
        outcome = await fetcher.fetch(ProxyFetchStrategy(client, storage_config), REF)

    assert isinstance(outcome, Failure)
    assert outcome.kind is expected
    assert calls == (4 if expected is ErrorKind.TRANSIENT else 1)


@pytest.mark.asyncio
async def test_proxy_recovers_from_connection_errors(storage_config: StorageConfig):
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise httpx.ConnectError("network is unreachable", request=request)
        return httpx.Response(200, content=b"hello")

    sleeps = SleepRecorder()
    async with proxy_client(handler) as client:
        outcome = await ResilientFetcher(sleep=sleeps).fetch(ProxyFetchStrategy(client, storage_config), REF)
        assert isinstance(outcome, Bytes)
        assert b"".join([chunk async for chunk in outcome.body]) == b"hello"

    assert attempts == 3
    assert sleeps.delays == [1.0, 2.0]


class TrackingStream(httpx.AsyncByteStream):
    def __init__(self, data: bytes):
        self._data = data
        self.closed = False

    async def __aiter__(self):
        yield self._data

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_proxy_close_releases_unread_response(storage_config: StorageConfig):
    stream = TrackingStream(b"never read")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=stream)

    async with proxy_client(handler) as client:
        outcome = await ProxyFetchStrategy(client, storage_config).retrieve(REF)
        assert stream.closed is False

        await outcome.close()
        await outcome.close()

    assert stream.closed is True


@pytest.mark.asyncio
async def test_proxy_failures_never_log_object_key(storage_config: StorageConfig, caplog):
    sensitive = BlobReference(object_key="users/alice-uid/medical-record.pdf", display_name="record.pdf")
    statuses = iter([503, 404])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses))

    fetcher = ResilientFetcher(sleep=SleepRecorder())
    with caplog.at_level(logging.WARNING):
        async with proxy_client(handler) as client:
            outcome = await fetcher.fetch(ProxyFetchStrategy(client, storage_config), sensitive)

    assert isinstance(outcome, Failure)
    assert outcome.kind is ErrorKind.NOT_FOUND

    formatter = StructuredFormatter("api")
    lines = [json.loads(formatter.format(record)) for record in caplog.records]
    assert [line["message"] for line in lines] == ["Download attempt failed, retrying", "Download failed"]
    assert [line["error"] for line in lines] == ["HTTPStatusError: 503", "HTTPStatusError: 404"]

    output = json.dumps(lines)
    assert sensitive.object_key not in output
    assert quote(sensitive.object_key, safe="") not in output
    assert "alice-uid" not in output


# ============================================================================
# select_strategy
# ============================================================================


def test_select_prefers_signed_url_with_credentials():
    signed = ScriptedStrategy(name="signed_url")
    proxy = ScriptedStrategy(name="proxy")
    assert select_strategy(True, signed, proxy) is signed


def test_select_proxy_without_credentials():
    signed = ScriptedStrategy(name="signed_url")
    proxy = ScriptedStrategy(name="proxy")
    assert select_strategy(False, signed, proxy) is proxy
    assert select_strategy(True, None, proxy) is proxy
