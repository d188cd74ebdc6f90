"""
Exception handlers.
Owns: Mapping exceptions to HTTP responses.

Every JSON error body carries a human-readable "error" string that the
dashboard displays verbatim.
"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .exceptions import AppException, InternalException

logger = logging.getLogger(__name__)

_VALUE_ERROR_PREFIX = "Value error, "


def _describe_validation_error(error: dict) -> str:
    message = str(error.get("msg", "Invalid request"))
    if message.startswith(_VALUE_ERROR_PREFIX):
        # Raised by our own field validators, already user-facing
        return message[len(_VALUE_ERROR_PREFIX):]

    field = ".".join(str(loc) for loc in error.get("loc", ()) if loc != "body")
    if error.get("type") == "missing" and field:
        return f"{field} is required"
    return f"{field}: {message}" if field else message


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    correlation_id = getattr(request.state, "correlation_id", None)
    server_error = exc.status_code >= 500
    log = logger.error if server_error else logger.warning
    log(
        "Application error",
        extra={
            "error_code": exc.error_code,
            # 5xx messages can carry upstream error text, which may embed object keys
            "error": None if server_error else exc.message,
            "status_code": exc.status_code,
            "correlation_id": correlation_id,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    correlation_id = getattr(request.state, "correlation_id", None)
    errors = exc.errors()
    logger.warning(
        "Validation error",
        extra={
            "error_code": "INVALID_INPUT",
            "error": [e.get("type") for e in errors],
            "correlation_id": correlation_id,
        },
    )
    message = _describe_validation_error(errors[0]) if errors else "Request validation failed"
    return JSONResponse(
        status_code=400,
        content={
            "error": message,
            "error_code": "INVALID_INPUT",
            "retryable": False,
        },
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == 404 and request.url.path.startswith("/api"):
        message = "API endpoint not found"
    elif exc.status_code == 405:
        message = "Method not allowed"
    else:
        message = str(exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": message},
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = getattr(request.state, "correlation_id", None)
    logger.exception(
        "Unhandled exception",
        extra={"correlation_id": correlation_id},
    )
    internal = InternalException("An unexpected error occurred")
    return JSONResponse(
        status_code=internal.status_code,
        content=internal.to_dict(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
