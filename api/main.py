"""
api/main.py -- FastAPI application entry point for authbridge.

Run with:  uvicorn api.main:app --reload
           python main.py serve

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan builds every shared resource from one Settings object and tears
them down symmetrically:
  settings -> session manager -> shared httpx.AsyncClient
           -> Auth binding (identity client or account store)
           -> profile store + UserController
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import HealthResponse
from api.routes.v1.auth import router as auth_router
from auth import errors
from auth.errors import AuthError
from auth.providers import build_auth
from auth.responses import error_response
from auth.session import CookieSessionManager
from core.config import get_settings
from profiles.controllers import UserController
from profiles.store import SQLDocumentStore

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authbridge.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Components receive Settings explicitly -- get_settings() is
    called here and nowhere below the app layer.
    """
    settings = get_settings()
    app.state.settings = settings
    app.state.sessions = CookieSessionManager(settings)
    app.state.http = httpx.AsyncClient(timeout=settings.identity_timeout)
    app.state.auth = build_auth(settings, app.state.sessions, http=app.state.http)
    app.state.profile_db = SQLDocumentStore(settings.database_url)
    app.state.users = UserController(app.state.profile_db)
    logger.info("authbridge API starting up (backend=%s)", settings.auth_backend)

    yield

    await app.state.auth.aclose()
    await app.state.http.aclose()
    app.state.profile_db.close()
    logger.info("authbridge API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="authbridge API",
    description="Session-backed authentication over a pluggable identity provider.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler answers with the same error envelope the auth layer uses, so
# clients parse one shape regardless of where the failure happened.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> Response:
    """Render a failed require_user() guard as its redirect or 401/403 envelope."""
    return exc.to_response()


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = error_response(errors.TOO_MANY_REQUESTS, f"Too many requests: {exc.detail}", 429)
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 validation/request when the body or query fails schema validation."""
    return error_response(errors.VALIDATION_REQUEST, f"Request validation failed: {exc.errors()}", 400)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(f"http/{exc.status_code}", str(exc.detail), exc.status_code)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response("internal/error", "An unexpected error occurred.", 500)


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and the active auth backend."""
    return HealthResponse(version=__version__, backend=request.app.state.settings.auth_backend)
