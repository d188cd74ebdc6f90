"""
Body size middleware.
Owns: Rejecting oversized request bodies before they are parsed.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.api.errors import InvalidInputException, PayloadTooLargeException
from shared.input_validation import MAX_BODY_BYTES


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, max_body_bytes: int = MAX_BODY_BYTES):
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Exception handlers do not see errors raised in middleware
        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                too_large = int(content_length) > self.max_body_bytes
            except ValueError:
                exc = InvalidInputException("Invalid Content-Length header")
                return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
            if too_large:
                exc = PayloadTooLargeException("Request body too large")
                return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

        return await call_next(request)
