"""
FastAPI Application Entry Point.
Owns: App factory, router mounting, middleware setup, service wiring.
"""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from app.api.config import Settings, get_settings
from app.api.errors import register_exception_handlers
from app.api.middleware import (
    BodySizeLimitMiddleware,
    CORSMiddleware,
    RequestLoggingMiddleware,
)
from app.api.routes import download_router, health_router
from app.api.services.download import (
    DownloadService,
    build_download_service,
    create_http_client,
)
from shared.logging import configure_root_logger

CORS_ALLOW_METHODS = ["GET", "OPTIONS", "PATCH", "DELETE", "POST", "PUT"]
CORS_ALLOW_HEADERS = [
    "X-CSRF-Token",
    "X-Requested-With",
    "Accept",
    "Accept-Version",
    "Content-Length",
    "Content-MD5",
    "Content-Type",
    "Date",
    "X-Api-Version",
    "X-Correlation-ID",
]


def create_app(
    settings: Settings | None = None,
    download_service: DownloadService | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Defaults to environment settings
        download_service: Pre-built service (tests inject fakes here)
    """
    settings = settings or get_settings()

    http_client: httpx.AsyncClient | None = None
    if download_service is None:
        http_client = create_http_client(settings)
        download_service = build_download_service(settings, http_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if http_client is not None:
            await http_client.aclose()

    app = FastAPI(
        title="Pinpin Storage API",
        version="1.0.0",
        docs_url="/docs" if settings.service_env != "prod" else None,
        redoc_url="/redoc" if settings.service_env != "prod" else None,
        openapi_url="/openapi.json" if settings.service_env != "prod" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.download_service = download_service

    # Middleware (order matters: last added = outermost)
    app.add_middleware(BodySizeLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        # Credentials make Starlette echo the caller's Origin instead of "*"
        allow_credentials=settings.cors_origin != "*",
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
        expose_headers=["Content-Disposition", "Content-Length", "X-Correlation-ID"],
    )

    # Exception handlers
    register_exception_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(download_router)

    return app


configure_root_logger("api", get_settings().log_level)
app = create_app()
