"""
api/main.py -- Sociosim API application.

Serves the session operations the interview front-end needs (sign-in,
sign-out, session read and hydration, code exchange, account update) plus
the Cauldron prompt validation proxy.

Run with:  uvicorn asgi:app --reload

Requests pass TrustedHost, then CORS, then SlowAPI before reaching a route.

Startup builds the shared auth transport and the per-request auth client
factory (see auth/client.py) plus the Cauldron httpx client; shutdown
closes both HTTP clients.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import partial

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from supabase import AuthError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.cauldron import router as cauldron_router
from auth.client import create_auth_transport, new_auth_client
from auth.models import AuthTimeouts
from auth.queue import SerialQueue, auth_queue
from core.config import get_settings
from core.timeout import OperationTimeoutError

VERSION = "0.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sociosim.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the outbound HTTP clients and the per-request auth client factory.

    No provider session lives here: get_auth_service() builds a fresh auth
    client per request on top of the shared auth transport. All of them
    queue on auth.queue.auth_queue.
    """
    logger.info("Sociosim API starting up")
    app.state.auth_http_client = create_auth_transport(_settings)
    app.state.auth_client_factory = partial(new_auth_client, _settings, app.state.auth_http_client)
    app.state.auth_queue = auth_queue
    app.state.auth_timeouts = AuthTimeouts.from_settings(_settings)
    app.state.http_client = httpx.AsyncClient()
    logger.info("Auth clients ready")

    yield

    await app.state.auth_http_client.aclose()
    await app.state.http_client.aclose()
    logger.info("Sociosim API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Sociosim API",
    description="Session gateway and prompt validation proxy for simulated sociology interviews.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "X-Refresh-Token"],
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
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    # Slow auth responses usually mean the lane was busy; the log shows how long.
    logger.info("%s %s -> %d in %.1fms", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(cauldron_router, prefix="/api/v1", tags=["Cauldron"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error body is {"error": {"code", "message", "detail"?}} so the
# front-end can branch on error.code alone.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 once LOGIN_RATE_LIMIT is spent; Retry-After tells the client when to retry."""
    response = _error_response(429, "rate_limited", "Trop de tentatives. Réessayez plus tard.", str(exc))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(OperationTimeoutError)
async def timeout_handler(request: Request, exc: OperationTimeoutError) -> JSONResponse:
    """504 when a deadline-bounded upstream call did not settle in time.

    The upstream call may still complete later; nothing here waits for it.
    """
    logger.warning("%s %s: %s", request.method, request.url.path, exc)
    return _error_response(504, "timeout", "The upstream service did not answer in time.", str(exc))


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """400 for provider errors a route did not map itself.

    The provider's wording goes to detail and the log, never to message.
    """
    provider_message = getattr(exc, "message", None) or str(exc)
    logger.warning("Unmapped provider error on %s %s: %s", request.method, request.url.path, provider_message)
    return _error_response(
        400,
        "auth_error",
        "Une erreur d'authentification est survenue. Veuillez réessayer.",
        provider_message,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Routes raise HTTPException(detail={"code": ..., "message": ...}); pass that through as-is."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 for anything unexpected. The traceback goes to the log, never to the body."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Liveness, version, and whether an auth call is currently in flight."""
    queue: SerialQueue | None = getattr(request.app.state, "auth_queue", None)
    components = {"app": "ok"}
    if queue is not None:
        components["auth_queue"] = "idle" if queue.idle else "busy"
    return HealthResponse(status="healthy", version=VERSION, components=components)
