from .download import DownloadService, build_download_service, create_http_client
from .retrieval import (
    Bytes,
    ErrorKind,
    Failure,
    ProxyFetchStrategy,
    Redirect,
    ResilientFetcher,
    RetrievalOutcome,
    RetryPolicy,
    SignedUrlStrategy,
    classify_error,
    select_strategy,
)
from .storage import (
    CredentialsError,
    ServiceAccountCredentials,
    StorageConfig,
    build_storage_config,
)

__all__ = [
    "DownloadService",
    "build_download_service",
    "create_http_client",
    "Bytes",
    "ErrorKind",
    "Failure",
    "ProxyFetchStrategy",
    "Redirect",
    "ResilientFetcher",
    "RetrievalOutcome",
    "RetryPolicy",
    "SignedUrlStrategy",
    "classify_error",
    "select_strategy",
    "CredentialsError",
    "ServiceAccountCredentials",
    "StorageConfig",
    "build_storage_config",
]
