"""
Music Library Gateway - Main Application

Authenticated relay in front of the upstream music-library service:
- Identity tokens decoded locally and resolved to users upstream
- Email-verification and admin gates
- Request relaying with fallback-endpoint retry
- Avatar and media uploads to local disk
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import Settings, get_settings
from .core.errors import GatewayError
from .core.token_codec import TokenCodec
from .core.uploads import UploadStore
from .infrastructure.upstream_relay import UpstreamRelay
from .api.middleware import AdminMiddleware, AuthMiddleware
from .api.routes import router
from .api.song_routes import router as song_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager for startup/shutdown events"""
    # Startup
    settings: Settings = app.state.settings
    logger.info("Starting music-gateway v1.0.0")
    logger.info(f"Upstream service: {settings.backend_url}")
    if settings.secondary_backend_url:
        logger.info("Secondary backend URL is configured but disabled")
    logger.info(f"Gateway listening on {settings.host}:{settings.port}")
    app.state.upload_store.ensure_directory()

    yield

    # Shutdown
    await app.state.http_client.aclose()
    logger.info("Shutting down music-gateway")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Settings to use (defaults to the environment-backed singleton)

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Music Library Gateway",
        description="Authenticated relay to the music-library service",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Shared, immutable after startup
    http_client = httpx.AsyncClient()
    relay = UpstreamRelay(http_client, settings.backend_url, timeout=settings.upstream_timeout)
    codec = TokenCodec(settings.token_secret)
    upload_store = UploadStore(settings.uploads_dir, max_bytes=settings.max_upload_bytes)

    app.state.settings = settings
    app.state.http_client = http_client
    app.state.relay = relay
    app.state.codec = codec
    app.state.upload_store = upload_store

    app.add_middleware(
        AuthMiddleware,
        codec=codec,
        relay=relay,
        user_endpoint=settings.get_user_endpoint,
    )
    app.add_middleware(
        AdminMiddleware,
        relay=relay,
        verify_endpoint=settings.admin_verify_endpoint,
    )

    # Configure CORS (outermost so preflight requests skip the auth gates)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _add_exception_handlers(app)

    app.include_router(router)
    app.include_router(song_router)

    _mount_static(app, settings)

    return app


def _add_exception_handlers(app: FastAPI) -> None:
    """Render every failure as a JSON body with an "error" field."""

    @app.exception_handler(GatewayError)
    async def handle_gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def _mount_static(app: FastAPI, settings: Settings) -> None:
    """
    Serve uploaded files and, when it has been built, the frontend.

    The frontend is mounted last at "/" so API routes take precedence.
    """
    app.mount(
        "/uploads",
        StaticFiles(directory=settings.uploads_dir, check_dir=False),
        name="uploads",
    )

    frontend = Path(settings.frontend_dir)
    if frontend.is_dir():
        app.mount("/", StaticFiles(directory=str(frontend), html=True), name="frontend")
        logger.info(f"Serving frontend from {frontend}")
    else:
        logger.info(f"Frontend directory {frontend} not found, skipping static mount")


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    # Configure logging level from settings
    logging.getLogger().setLevel(settings.log_level)

    uvicorn.run(
        "music_gateway.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
