"""
User Files API - FastAPI application factory.

create_app() wires the service together at setup time:

1. Verify the S3 settings; a missing credential or bucket aborts setup.
2. Build the shared storage client and the metadata store.
3. Install UserFilesMiddleware, then the authentication middleware around it,
   so every request reaches the file middleware with its user resolved.
4. Register the /api/v1 routers and the health endpoints.

The MongoDB connection is opened and closed by the application lifespan.
"""

import logging
import time

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from user_files import __app_name__, __version__
from user_files.api.v1 import api_router
from user_files.config import Settings, get_settings, verify_storage_settings
from user_files.core.auth import install_user_auth
from user_files.core.database import DatabaseClient
from user_files.core.metadata import MetadataStore
from user_files.core.middleware import UserFilesMiddleware
from user_files.core.storage import StorageClient, create_storage_client


logger = logging.getLogger(__name__)

# Status codes >= 400 are logged as warnings
HTTP_ERROR_THRESHOLD = 400


def create_app(
    settings: Settings | None = None,
    storage_client: StorageClient | None = None,
    metadata_store: MetadataStore | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Resolved settings; defaults to get_settings()
        storage_client: Prebuilt storage client; built from settings when None
        metadata_store: Prebuilt metadata store; when None the app owns a
            MongoDB connection opened in its lifespan

    Returns:
        FastAPI: The configured application

    Raises:
        MissingConfigurationError: If a required S3 setting is missing. No
            client is built and no middleware is installed.
    """
    settings = settings or get_settings()
    verify_storage_settings(settings)

    if storage_client is None:
        storage_client = create_storage_client(settings)

    db_client: DatabaseClient | None = None
    if metadata_store is None:
        db_client = DatabaseClient(settings)
        metadata_store = MetadataStore(db_client.get_custom_data_collection)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "User files API starting",
            extra={
                "app_env": settings.app_env,
                "bucket": settings.aws_bucket,
                "region": settings.aws_region,
            },
        )
        if db_client is not None and not await db_client.connect():
            raise RuntimeError("MongoDB initialization failed")

        yield

        if db_client is not None:
            await db_client.close()
        logger.info("User files API shutdown complete")

    app = FastAPI(
        title="User Files API",
        description="Per-user file storage backed by S3 with metadata kept in MongoDB.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # =========================================================================
    # Middleware Configuration
    # =========================================================================

    # Starlette runs the last added middleware first
    app.add_middleware(
        UserFilesMiddleware,
        storage_client=storage_client,
        metadata_store=metadata_store,
        settings=settings,
    )
    install_user_auth(app, settings)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next) -> Response:
        request_id = f"{time.time_ns()}"
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Process-Time"] = f"{process_time_ms}ms"
        response.headers["X-Request-ID"] = request_id

        log_level = logging.DEBUG if response.status_code < HTTP_ERROR_THRESHOLD else logging.WARNING
        logger.log(
            log_level,
            f"Request completed: {request.method} {request.url.path}",
            extra={
                "status_code": response.status_code,
                "process_time_ms": process_time_ms,
                "request_id": request_id,
            },
        )
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )

    # =========================================================================
    # Routes
    # =========================================================================

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["health"], summary="Health Check")
    async def health_check() -> dict[str, Any]:
        """Liveness probe; never touches S3 or MongoDB."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": __version__,
            "service": __app_name__,
        }

    @app.get("/ready", tags=["health"], summary="Readiness Check")
    async def readiness_check() -> JSONResponse:
        """Readiness probe; reports whether the metadata database answers a ping."""
        database_ok = True if db_client is None else await db_client.ping()
        return JSONResponse(
            status_code=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "ready": database_ok,
                "checks": {"database": "ok" if database_ok else "unavailable"},
            },
        )

    return app


__all__ = ["create_app"]
