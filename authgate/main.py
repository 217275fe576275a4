"""
FastAPI Application Factory
===========================

Entry point for the authentication gate: a backend that signs browsers in
with Google and keeps a server-side session behind an httpOnly cookie.

Architecture:
    Browser → /auth/start → Google consent → /auth/callback → session cookie
    Browser → /whoami, /logout (with cookie, CORS credentials from FRONTEND_ORIGIN)

Routers:
    - /auth/*       : login start and provider callback
    - /whoami, /me  : current identity
    - /logout       : session teardown
    - /health       : health check

Environment Variables Required:
    - GOOGLE_CLIENT_ID: OAuth client ID
    - GOOGLE_CLIENT_SECRET: OAuth client secret
    - SESSION_SECRET: Secret for signing cookies (32+ characters)
    - BACKEND_ORIGIN: Public origin of this service (default: http://localhost:5000)
    - FRONTEND_ORIGIN: Frontend origin (default: http://localhost:3000)
    - LOG_LEVEL: Logging level (default: INFO)

Missing credentials raise ConfigurationError while the module is imported,
so the server never starts serving traffic without them.

Running the Service:
    Development:
        uvicorn authgate.main:app --reload --port 5000

    Production (single instance; sessions live in process memory):
        uvicorn authgate.main:app --host 0.0.0.0 --port 5000
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from authgate import __version__
from authgate.auth.gate import AuthGate
from authgate.auth.provider import GoogleIdentityProvider, IdentityProvider
from authgate.auth.routes import auth_router, session_router
from authgate.config import Settings, get_settings, validate_configuration
from authgate.models import ErrorResponse, HealthResponse
from authgate.sessions.pending import PendingLoginStore, build_pending_store
from authgate.sessions.store import InMemorySessionStore, SessionStore, build_session_store

SERVICE_NAME = "authgate"


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


async def sweep_expired(gate: AuthGate, interval_seconds: float) -> None:
    """Periodically purge expired sessions and pending logins until cancelled."""
    logger = logging.getLogger("authgate.main")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await gate.purge_expired()
        except Exception as e:
            logger.error(f"Expiry sweep failed: {e}", exc_info=True)
            continue
        if removed:
            logger.debug(f"Expiry sweep removed {removed} records")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Log configuration warnings
        - Start the expiry sweep

    Shutdown tasks:
        - Stop the sweep
        - Close the provider HTTP client
    """
    gate: AuthGate = app.state.gate
    settings = gate.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("authgate.main")

    report = validate_configuration(settings)
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    if isinstance(gate.session_store, InMemorySessionStore):
        logger.warning(
            "Using in-memory session store; sessions are lost on restart "
            "and not shared between instances"
        )

    sweeper = asyncio.create_task(sweep_expired(gate, settings.SWEEP_INTERVAL_SECONDS))

    logger.info(
        "Authentication gate started",
        extra={
            "service": SERVICE_NAME,
            "version": __version__,
            "callback_url": report["callback_url"],
            "allowed_origins": report["allowed_origins"],
        }
    )

    yield

    logger.info("Shutting down authentication gate")
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    await gate.aclose()
    logger.info("Authentication gate shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_store: Optional[SessionStore] = None,
    pending_store: Optional[PendingLoginStore] = None,
    provider: Optional[IdentityProvider] = None,
) -> FastAPI:
    """
    Application factory function.

    Collaborators default to the in-memory stores and the Google adapter;
    tests and alternative deployments pass their own.

    Raises:
        ConfigurationError: If settings are not given and cannot be loaded
    """
    if settings is None:
        settings = get_settings()

    if session_store is None:
        session_store = build_session_store(settings)
    if pending_store is None:
        pending_store = build_pending_store(settings)
    if provider is None:
        provider = GoogleIdentityProvider(settings)

    app = FastAPI(
        title="Authentication Gate",
        description="Google sign-in with server-side sessions",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.gate = AuthGate(
        settings=settings,
        session_store=session_store,
        pending_store=pending_store,
        provider=provider,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(session_router)

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Service status and number of sessions held."""
        return HealthResponse(
            status="ok",
            service=SERVICE_NAME,
            active_sessions=await app.state.gate.session_store.count(),
        )

    @app.get("/", tags=["System"])
    async def root():
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "description": "Google OAuth demo backend",
            "endpoints": {
                "login": "/auth/start",
                "callback": "/auth/callback",
                "whoami": "/whoami",
                "logout": "/logout",
                "health": "/health",
            },
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Log unhandled errors and return a generic 500 body.

        Exception detail is only included when LOG_LEVEL is DEBUG.
        """
        logger = logging.getLogger("authgate.main")
        logger.error(
            f"Unhandled exception: {type(exc).__name__}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )

        body = ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred",
            detail=str(exc) if settings.LOG_LEVEL == "DEBUG" else None,
        )
        return JSONResponse(status_code=500, content=body.model_dump())

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "authgate.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
