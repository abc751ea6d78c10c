"""
FastAPI application for the calendar sync service.

This is the main entry point for the HTTP API, providing:
- Google Calendar OAuth and preference endpoints
- The event-changed signal used by the scheduling app
- Health endpoint
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calendar_sync.api.dependencies import build_services
from calendar_sync.api.event_routes import router as event_router
from calendar_sync.api.integration_routes import router as integration_router
from calendar_sync.api.middleware import RequestLoggingMiddleware
from calendar_sync.api.models import HealthResponse
from calendar_sync.config import Settings, get_settings
from calendar_sync.database import create_engine_from_settings, create_session_factory, init_db

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings override (defaults to get_settings())
        session_factory: Session factory override (defaults to one over
            the configured database, disposed on shutdown)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        app_settings = settings or get_settings()
        logging.basicConfig(level=app_settings.log_level)
        logger.info("Starting calendar sync API")

        engine = None
        factory = session_factory
        if factory is None:
            engine = create_engine_from_settings(app_settings)
            if not app_settings.is_production:
                await init_db(engine)
            factory = create_session_factory(engine)

        app.state.session_factory = factory
        build_services(app, factory, app_settings)
        logger.info("Calendar sync API started")

        yield

        logger.info("Shutting down calendar sync API")
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Calendar Sync API",
        description="""
# Calendar Sync API

Pushes scheduled events into calendars the service creates in each user's
Google account: an organization-wide calendar (admins), one calendar per
venue, and a personal calendar with the user's own assignments.

## Flow
1. **GET /integrations/google-calendar/authorize** - Get the consent URL
2. Google redirects to **/integrations/google-calendar/callback**
3. **PATCH /integrations/google-calendar/preferences** - Pick calendars
4. The scheduling app calls **POST /internal/events/{event_id}/changed**
   after every event mutation

The caller is identified by the `X-User-ID` header.
        """,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(integration_router)
    app.include_router(event_router)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error_type": "http_error",
                "message": exc.detail,
                "retryable": exc.status_code >= 500,
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error_type": "internal_error",
                "message": "An unexpected error occurred",
                "retryable": True,
            },
        )

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health check",
        tags=["System"],
    )
    async def health_check(request: Request) -> HealthResponse:
        """Check API health and database connectivity."""
        database_connected = False
        factory = getattr(request.app.state, "session_factory", None)
        if factory is not None:
            try:
                async with factory() as session:
                    await session.execute(text("SELECT 1"))
                database_connected = True
            except Exception as e:
                logger.error(f"Database connection failed: {e}")

        app_settings = getattr(request.app.state, "settings", None) or get_settings()
        return HealthResponse(
            status="healthy" if database_connected else "unhealthy",
            version=API_VERSION,
            database_connected=database_connected,
            google_oauth_configured=app_settings.uses_google_oauth,
        )

    return app


app = create_app()


# =============================================================================
# Run with Uvicorn
# =============================================================================


def run_server(host: Optional[str] = None, port: Optional[int] = None, reload: Optional[bool] = None):
    """Run the API server with Uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "calendar_sync.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=settings.api_reload if reload is None else reload,
    )


if __name__ == "__main__":
    run_server()
