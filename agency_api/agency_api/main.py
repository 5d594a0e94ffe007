"""FastAPI application entry-point for the agency maintenance dashboard."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from agency_api import __version__
from agency_api.config import PlatformEnv, load_api_settings
from agency_api.dependencies import dispose_engine, get_settings, init_engine
from agency_api.middleware.auth import AuthenticationMiddleware, build_token_manager
from agency_api.middleware.logging import RequestLoggingMiddleware
from agency_api.routers import health, maintenance_admin, maintenance_client

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup the async engine is created and, in dev or local SQLite
    mode, missing tables are created (deployments use Alembic).  On
    shutdown the connection pool is disposed.
    """
    settings = get_settings()

    if settings.structured_logging:
        from agency_api.middleware.json_formatter import configure_json_logging

        configure_json_logging()
        logger.info("Structured JSON logging enabled")

    engine = init_engine(settings)
    is_local = settings.is_sqlite()
    logger.info(
        "Database engine initialised (%s, %s)",
        settings.database_url[:40] + "...",
        "local" if is_local else "postgres",
    )

    if settings.platform_env == PlatformEnv.DEV or is_local:
        from agency_core.state.tables import Base

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured (%s)", "local SQLite" if is_local else "dev auto-migration")

    logger.info("Hours policy: %s", settings.hours_policy)

    yield

    await dispose_engine()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Construct and configure the FastAPI application."""
    settings = load_api_settings()

    app = FastAPI(
        title="Agency Dashboard API",
        description="Maintenance hour tracking for client websites.",
        version=__version__,
        lifespan=lifespan,
    )

    # -- Middleware (last added runs first) ----------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID", "Accept"],
    )
    app.add_middleware(AuthenticationMiddleware, token_manager=build_token_manager(settings))
    app.add_middleware(RequestLoggingMiddleware)

    # -- Routers -------------------------------------------------------------

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(maintenance_admin.router, prefix="/api/v1")
    app.include_router(maintenance_client.router, prefix="/api/v1")
    app.include_router(health.readiness_router)

    # -- Exception handlers --------------------------------------------------

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("ValueError on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": "Invalid request"})

    @app.exception_handler(PermissionError)
    async def permission_error_handler(request: Request, exc: PermissionError) -> JSONResponse:
        logger.warning("PermissionError on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=403, content={"detail": "Permission denied"})

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error: %s", exc, exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal database error"})

    return app


# Module-level application instance used by ``uvicorn agency_api.main:app``.
app = create_app()
