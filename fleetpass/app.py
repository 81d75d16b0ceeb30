"""
FleetPass - FastAPI Application Entrypoint

This module initializes the FastAPI application with:
- CORS and security middleware
- Per-address rate limiting on public auth routes
- Authentication routes and dependencies
- Database lifecycle management and seeding

Use create_app() to build an app around explicit settings, engine and
notification dispatcher; the module-level `app` uses the environment.

The rate limiter is the process-wide instance from fleetpass.gateway.limiter.
Every app built in the process shares its counters, and the most recent
create_app() call decides whether it is enabled.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.engine import Engine

from fleetpass.auth.database import get_engine, get_session_factory, init_db
from fleetpass.auth.routes import router as auth_router
from fleetpass.auth.seed import seed_database
from fleetpass.auth.tokens import SessionTokenIssuer
from fleetpass.config import Settings, get_settings
from fleetpass.gateway.limiter import limiter
from fleetpass.gateway.middleware import SecurityMiddleware
from fleetpass.logging_config import configure_logging
from fleetpass.services.notifications import LogNotificationDispatcher, NotificationDispatcher


logger = logging.getLogger(__name__)

APP_NAME = "FleetPass API"
APP_VERSION = "1.0.0"


def _format_validation_error(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    message = error.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (defaults to the environment)
        engine: Pre-built engine; the app does not dispose engines it did not create
        notifier: Notification dispatcher (defaults to logging only)

    Note:
        Sets `enabled` on the shared limiter from RATE_LIMIT_ENABLED. Apps
        built in the same process share that switch and its memory store.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Startup:
            - Configure logging
            - Create identity tables and seed roles/permissions
            - Build the session token issuer and notifier

        Shutdown:
            - Dispose the engine if this app created it
        """
        configure_logging(settings.LOG_LEVEL)

        owns_engine = engine is None
        db_engine = engine or get_engine(settings.DATABASE_URL)
        init_db(db_engine)

        session_factory = get_session_factory(db_engine)
        with session_factory() as db:
            seed_database(db, settings)

        app.state.settings = settings
        app.state.db_engine = db_engine
        app.state.db_session_factory = session_factory
        app.state.token_issuer = SessionTokenIssuer.from_settings(settings)
        dispatcher = notifier
        if dispatcher is None:
            if not settings.DEBUG:
                logger.warning(
                    "No notification dispatcher configured; account emails are only logged"
                )
            dispatcher = LogNotificationDispatcher(settings.FRONTEND_URL)
        app.state.notifier = dispatcher

        logger.info("%s v%s started", APP_NAME, APP_VERSION)

        yield

        if owns_engine:
            db_engine.dispose()

    app = FastAPI(
        title=APP_NAME,
        description="Identity and access management for the FleetPass rental platform",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    # Rate limiting (slowapi looks for app.state.limiter)
    limiter.enabled = settings.RATE_LIMIT_ENABLED
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    app.add_middleware(SecurityMiddleware)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        logger.warning("Rate limit exceeded for %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": "Rate limit exceeded. Please try again later."},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        detail = "; ".join(_format_validation_error(e) for e in exc.errors()) or "Invalid request"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": detail,
                "error_code": "validation_error",
                "request_id": getattr(request.state, "request_id", None),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "request_id": getattr(request.state, "request_id", None),
            },
        )

    app.include_router(auth_router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for local dev tooling."""
        return {
            "status": "healthy",
            "version": APP_VERSION,
        }

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "message": f"{APP_NAME} v{APP_VERSION}",
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
