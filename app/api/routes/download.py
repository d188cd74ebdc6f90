"""
Download routes.
Owns: HTTP surface of the download flow.

This module is a thin adapter:
- No storage calls
- No retry logic
- Only request parsing, outcome -> response mapping
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from app.api.errors import (
    AccessDeniedException,
    AppException,
    InvalidInputException,
    NotFoundException,
    StorageException,
    StorageUnavailableException,
)
from app.api.services.download import DownloadService
from app.api.services.retrieval import ErrorKind, Failure, Redirect
from shared.path_validation import encode_content_disposition, DEFAULT_DISPLAY_NAME
from .models import DownloadRequest, SignedUrlResponse

router = APIRouter(prefix="/api", tags=["downloads"])

DOWNLOAD_PATHS = ("/download", "/files/download")

NO_CACHE = "no-cache, no-store, must-revalidate"

_FAILURE_EXCEPTIONS: dict[ErrorKind, type[AppException]] = {
    ErrorKind.INVALID_INPUT: InvalidInputException,
    ErrorKind.NOT_FOUND: NotFoundException,
    ErrorKind.ACCESS_DENIED: AccessDeniedException,
    ErrorKind.TRANSIENT: StorageUnavailableException,
    ErrorKind.BACKEND_UNAVAILABLE: StorageUnavailableException,
    ErrorKind.UNKNOWN: StorageException,
}


def exception_for_failure(failure: Failure) -> AppException:
    exc_class = _FAILURE_EXCEPTIONS.get(failure.kind, StorageException)
    return exc_class(failure.message)


def get_download_service(request: Request) -> DownloadService:
    return request.app.state.download_service


async def download_file(
    request: Request,
    body: DownloadRequest,
    service: Annotated[DownloadService, Depends(get_download_service)],
) -> Response:
    """
    Resolve a stored object for the browser.

    Returns either {signedUrl, expiresAt} for a presigned download or the
    object bytes as an attachment.
    """
    correlation_id = getattr(request.state, "correlation_id", None)

    outcome = await service.retrieve(
        body.storage_path,
        body.file_name,
        correlation_id=correlation_id,
    )

    if isinstance(outcome, Failure):
        raise exception_for_failure(outcome)

    if isinstance(outcome, Redirect):
        payload = SignedUrlResponse(signed_url=outcome.url, expires_at=outcome.expires_at)
        return JSONResponse(
            content=payload.model_dump(mode="json", by_alias=True),
            headers={"Cache-Control": NO_CACHE},
        )

    headers = {
        "Content-Type": outcome.content_type,
        "Content-Disposition": encode_content_disposition(
            body.file_name or DEFAULT_DISPLAY_NAME
        ),
        "Cache-Control": NO_CACHE,
    }
    if outcome.length is not None:
        headers["Content-Length"] = str(outcome.length)

    # Releases the upstream connection even if the stream is never started
    background = BackgroundTask(outcome.close) if outcome.close is not None else None
    return StreamingResponse(outcome.body, headers=headers, background=background)


async def download_options() -> Response:
    return Response(status_code=200)


for _path in DOWNLOAD_PATHS:
    router.add_api_route(_path, download_file, methods=["POST"])
    router.add_api_route(_path, download_options, methods=["OPTIONS"], include_in_schema=False)
