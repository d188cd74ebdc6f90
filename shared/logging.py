"""
Unified structured logging for the storage API.

All modules log through the stdlib logging tree; this module installs the
JSON formatter on the root logger at startup and provides helpers for the
download path.

Usage:
    from shared.logging import configure_root_logger, hash_object_key

    configure_root_logger("api", "INFO")
    logger = logging.getLogger(__name__)
    logger.info("Download served", extra={
        "object_key_hash": hash_object_key(storage_path),
        "correlation_id": correlation_id,
        "strategy": "proxy",
    })

PII BLOCKLIST - NEVER LOG:
- Raw object keys (they embed user ids; use hash_object_key())
- Display filenames
- Signed URLs (they are bearer credentials)
- Service account secrets
- File contents
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict


def hash_object_key(object_key: str) -> str:
    """
    Create an anonymized object identifier.

    Returns first 16 characters of SHA-256 hash.
    Sufficient for correlating retries without exposing the key.
    """
    if not object_key:
        return "unknown"
    return hashlib.sha256(object_key.encode()).hexdigest()[:16]


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for API logs.

    Produces logs in format:
    {
        "timestamp": "2026-01-30T14:23:45.123Z",
        "level": "INFO",
        "service": "api",
        "logger": "app.api.services.retrieval",
        "message": "Retrying download",
        ...optional fields...
    }
    """

    # Fields that are allowed in log output
    ALLOWED_EXTRA_FIELDS = frozenset([
        "correlation_id",
        "object_key_hash",
        "strategy",
        "attempt",
        "max_retries",
        "delay_ms",
        "error_kind",
        "error_code",
        "error",
        "content_length",
        "duration_ms",
        "method",
        "path",
        "status_code",
    ])

    # Fields that must NEVER appear (safety check)
    BLOCKED_FIELDS = frozenset([
        "object_key",
        "storage_path",
        "filename",
        "file_name",
        "display_name",
        "signed_url",
        "secret",
        "secret_access_key",
        "service_account",
    ])

    def __init__(self, service: str):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in self.ALLOWED_EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        # Safety check: never expose the value of a blocked field
        for field in self.BLOCKED_FIELDS:
            if hasattr(record, field):
                log_entry["_pii_warning"] = f"Blocked field '{field}' was stripped"

        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, separators=(",", ":"), ensure_ascii=False, default=str)


def configure_root_logger(service: str, level: str = "INFO") -> None:
    """
    Configure the root logger with structured formatting.

    Call this once at application startup.

    Args:
        service: Service identifier
        level: Log level string (DEBUG, INFO, WARNING, ERROR)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(service))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)

    # Suppress noisy libraries
    for lib in ["httpx", "httpcore", "boto3", "botocore", "urllib3", "asyncio"]:
        logging.getLogger(lib).setLevel(logging.WARNING)
