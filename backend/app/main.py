"""
OrgTrack Backend — FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() assembles the request pipeline, exception handlers and
       routes. Stateful collaborators (rate limit store, session store,
       authenticator, telemetry) can be passed in; otherwise they are built
       from settings.
Who:   uvicorn app.main:app

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Pipeline (app/middleware/pipeline.py):                      │
    │    RequestID → AccessLog → SecurityHeaders → CORS            │
    │    → RateLimit → BodyParser → Sanitizers → Telemetry         │
    │    → Session → Authentication                                │
    │                                                              │
    │  Routes:                                                     │
    │    /{base}/ORGANIZATION|TEAMS|PROJECT|TASK   /{base}/auth/*  │
    │    /health                                   catch-all (last)│
    │                                                              │
    │  Exception Handlers:                                         │
    │    Validation→400 │ Auth→401 │ NotFound→404 │ DB→500         │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, banner with the public URL
    Shutdown: close rate limit store, flush telemetry, dispose DB engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app import __version__
from app.config import settings
from app.database import dispose_engine
from app.exceptions import DatabaseError, OrgTrackError
from app.middleware.pipeline import build_pipeline, install_pipeline
from app.middleware.request_id import request_id_var
from app.routes import auth, entities, fallback, health
from app.services.authenticator import Authenticator
from app.services.password_strategy import PasswordStrategy
from app.services.rate_limit_store import RateLimitStore, build_rate_limit_store
from app.services.session_store import SessionStore, SignedCookieSessionStore
from app.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole process.

    Format: 2024-01-15T12:00:00 [INFO] orgtrack.access: GET /api/TASK 200 3.1ms [a1b2c3d4] from 10.0.0.1
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # The access log middleware replaces uvicorn's own access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("OrgTrack Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving; health checks and logs make the problem visible
        logger.error("Configuration error: %s", str(e))

    logger.info(
        "Server is running on: http://%s:%d/%s",
        settings.public_host,
        settings.backend_port,
        settings.api_base_url,
    )
    logger.info("Rate limit: %d requests / %ds under %s (%s store)",
                settings.rate_limit_requests, settings.rate_limit_window,
                settings.rate_limit_path_prefix, settings.rate_limit_backend)
    if not app.state.telemetry.enabled:
        logger.info("Telemetry disabled (no TELEMETRY_API_KEY / TELEMETRY_ENDPOINT)")
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("OrgTrack Backend shutting down...")
    await app.state.rate_limit_store.close()
    await app.state.telemetry.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions raised inside route handlers to JSON responses.

    Handler hierarchy:
        RequestValidationError  → 400 {"status", "message", "details"}
        DatabaseError           → 500 {"error": "<generic entity message>"}
        OrgTrackError (others)  → exc.status_code {"status", "message", "request_id"}
        Exception (fallback)    → 500 generic message, traceback logged

    Pipeline rejections (429, 413, malformed bodies) never get here; the
    stages render those themselves.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        rid = request_id_var.get("")
        details = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
                "message": error.get("msg", "Invalid value"),
            }
            for error in exc.errors()
        ]
        logger.warning("[%s] Request validation failed: %s", rid, details)
        return JSONResponse(
            status_code=400,
            content={
                "status": "Error",
                "message": "Invalid request",
                "details": details,
                "request_id": rid,
            },
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(status_code=500, content={"error": exc.message})

    @app.exception_handler(OrgTrackError)
    async def handle_orgtrack_error(request: Request, exc: OrgTrackError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "Error", "message": exc.message, "request_id": rid},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "status": "Error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    rate_limit_store: Optional[RateLimitStore] = None,
    session_store: Optional[SessionStore] = None,
    authenticator: Optional[Authenticator] = None,
    telemetry_service: Optional[TelemetryService] = None,
) -> FastAPI:
    """
    Build a fully wired application.

    Tests pass their own collaborators (an in-memory store with a fake clock,
    an authenticator with a stub user loader) to get an isolated app per test.
    """
    app = FastAPI(
        title="OrgTrack API",
        description=(
            "Organization / Team / Project / Task hierarchy API with session "
            "authentication and a hardened request pipeline."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if rate_limit_store is None:
        rate_limit_store = build_rate_limit_store(settings.rate_limit_backend, settings.redis_url)
    if session_store is None:
        session_store = SignedCookieSessionStore(settings.cookie_secret, settings.session_max_age)
    if authenticator is None:
        authenticator = Authenticator()
    authenticator.use(PasswordStrategy())
    if telemetry_service is None:
        telemetry_service = TelemetryService.from_settings()

    app.state.rate_limit_store = rate_limit_store
    app.state.telemetry = telemetry_service

    # ── Register Middleware ───────────────────────────────────────────────
    install_pipeline(
        app,
        build_pipeline(
            rate_limit_store=rate_limit_store,
            session_store=session_store,
            authenticator=authenticator,
            telemetry_service=telemetry_service,
        ),
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(auth.router, prefix=settings.api_prefix)
    app.include_router(entities.router, prefix=settings.api_prefix)
    fallback.install_catch_all(app)

    return app


app = create_app()
