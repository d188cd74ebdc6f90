"""
Health routes.
Owns: Liveness and ping endpoints.
"""

from fastapi import APIRouter, Request

from .models import HealthResponse, PingResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    service = request.app.state.download_service
    strategy = "signed_url" if service.config.has_privileged_credentials else "proxy"
    return HealthResponse(
        status="ok",
        download_strategy=strategy,
        details={"bucket_configured": bool(service.config.bucket)},
    )


@router.get("/api/ping", response_model=PingResponse)
async def ping(request: Request) -> PingResponse:
    return PingResponse(message=request.app.state.settings.ping_message)
