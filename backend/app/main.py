# ============================================================================
# DocVault - FastAPI Application Entry Point
# ============================================================================
"""
Main FastAPI application module for DocVault, a document storage and
ingestion-tracking API.

This module sets up the FastAPI application with:
- CORS middleware configuration for cross-origin requests
- Lifespan handler that builds the database, object store and services
- Error handlers mapping domain errors to HTTP responses
- API router integration under /api/v1

Components are created once at startup and kept on ``app.state``; request
handlers reach them through the dependencies in ``app.dependencies``.

Usage:
    Direct: python -m app.main
    Docker: uvicorn app.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from http import HTTPStatus
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .api.v1 import api_router
from .api.v1.models import ErrorResponse
from .config import Settings, settings
from .core.auth.auth_service import AuthService
from .core.errors import DocVaultError
from .core.shared.database_service import DatabaseService
from .core.storage.object_store import ObjectStore
from .core.storage.storage_factory import create_object_store
from .services.document_service import DocumentService
from .services.ingestion_service import IngestionService

logger = logging.getLogger("docvault.main")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _error_body(error: str, detail: Optional[str]) -> Dict[str, Any]:
    return ErrorResponse(error=error, detail=detail, timestamp=datetime.now()).model_dump(mode="json")


def create_app(
    app_settings: Optional[Settings] = None,
    object_store: Optional[ObjectStore] = None,
    database: Optional[DatabaseService] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        app_settings: Settings to use (defaults to the module-level settings)
        object_store: Pre-built object store; otherwise one is created from
            ``app_settings.storage_config()`` at startup
        database: Pre-built DatabaseService; otherwise one is created from
            ``app_settings.database_url`` at startup and closed on shutdown
    """
    cfg = app_settings or settings
    configure_logging(cfg.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state = app.state
        owns_database = state.database is None

        logger.info(f"Starting {cfg.api_title} v{cfg.api_version} (debug={cfg.debug})")

        if owns_database:
            state.database = DatabaseService(cfg.database_url)
        await state.database.init_db()

        if state.object_store is None:
            # Fails fast on unknown backend or missing bucket
            state.object_store = create_object_store(cfg.storage_config())

        state.document_service = DocumentService(
            state.object_store,
            max_upload_size=cfg.max_upload_size,
            allowed_mime_types=cfg.allowed_mime_types,
        )
        state.ingestion_service = IngestionService(
            state.database.get_session,
            start_delay=cfg.ingestion_start_delay_seconds,
            tick_interval=cfg.ingestion_tick_interval_seconds,
            seconds_per_item=cfg.ingestion_seconds_per_item,
        )
        logger.info("Startup complete")

        yield

        logger.info("Shutting down...")
        await state.ingestion_service.shutdown()
        if owns_database:
            await state.database.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=cfg.api_title,
        version=cfg.api_version,
        description=(
            "DocVault - Document Storage API\n\n"
            "Upload and manage documents backed by MinIO or AWS S3, and track "
            "ingestion jobs that process them."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.database = database
    app.state.object_store = object_store
    app.state.auth_service = AuthService(
        jwt_secret=cfg.jwt_secret_key,
        jwt_algorithm=cfg.jwt_algorithm,
        access_token_expire_minutes=cfg.jwt_access_token_expire_minutes,
    )

    # ========================================================================
    # MIDDLEWARE
    # ========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    # ========================================================================
    # ERROR HANDLERS
    # ========================================================================

    @app.exception_handler(DocVaultError)
    async def domain_exception_handler(request: Request, exc: DocVaultError) -> JSONResponse:
        """Map domain errors to their HTTP status."""
        if exc.http_status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
            detail = exc.message if cfg.debug else "Storage backend error"
        else:
            detail = exc.message
        return JSONResponse(
            status_code=exc.http_status,
            content=_error_body(HTTPStatus(exc.http_status).phrase, detail),
        )

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content=_error_body("Validation Error", str(exc)))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(f"HTTP {exc.status_code}", str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Catch-all for unexpected errors. Details are only exposed in debug mode.
        """
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "Internal Server Error",
                str(exc) if cfg.debug else "An unexpected error occurred",
            ),
        )

    # ========================================================================
    # ROUTES
    # ========================================================================

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/", tags=["root"])
    async def root() -> Dict[str, Any]:
        """API information."""
        return {
            "name": cfg.api_title,
            "version": cfg.api_version,
            "status": "running",
            "docs_url": "/docs",
            "health_check": "/api/v1/system/health",
            "timestamp": datetime.now(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=settings.log_level.lower(),
    )
