"""
Request middleware.
Owns: Correlation IDs and the per-request access log line.

The ID comes from X-Correlation-ID, then X-Request-ID, else a fresh UUID.
It is stored on request.state for handlers and echoed on the response.
Request bodies carry object keys and filenames and are never logged.
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"
MAX_CORRELATION_ID_LENGTH = 128


def resolve_correlation_id(request: Request) -> str:
    candidate = request.headers.get(CORRELATION_HEADER) or request.headers.get(REQUEST_ID_HEADER)
    if candidate and len(candidate) <= MAX_CORRELATION_ID_LENGTH:
        return candidate
    return str(uuid.uuid4())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = resolve_correlation_id(request)
        request.state.correlation_id = correlation_id
        started = time.perf_counter()

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id

        logger.log(
            logging.WARNING if response.status_code >= 500 else logging.INFO,
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return response
