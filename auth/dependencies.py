"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_auth_service() builds the request's AuthService around a fresh provider
client (app.state.auth_client_factory) and the process-wide lane.

A caller is identified only by what it sends:
  Authorization: Bearer <access_token>   -- required for any identity
  X-Refresh-Token: <refresh_token>       -- needed to act on the session

try_get_session() verifies the bearer token with the provider (get_user).
No token means anonymous, without a provider call. A provider error or
deadline expiry while verifying is also treated as "no session".
require_session() wraps it and raises HTTP 401.

Layer rule: auth/dependencies.py may import from fastapi (for Depends /
HTTPException / Request) because this module is part of the FastAPI
dependency injection system. No imports from api/.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request
from supabase import AuthError

from auth.models import SessionInfo
from auth.service import AuthService
from core.timeout import OperationTimeoutError

logger = logging.getLogger("sociosim.auth")

REFRESH_TOKEN_HEADER = "X-Refresh-Token"


def log_auth_event(event, session) -> None:
    """Auth-state listener: one line per provider session change."""
    user = getattr(session, "user", None)
    logger.info("Auth state changed: %s (user=%s)", event, getattr(user, "id", None))


def get_auth_service(request: Request) -> AuthService:
    """Return this request's AuthService.

    FastAPI caches dependencies per request, so every Depends(get_auth_service)
    in one request shares the same provider client.
    """
    state = request.app.state
    service = AuthService(
        state.auth_client_factory(),
        queue=state.auth_queue,
        timeouts=state.auth_timeouts,
    )
    service.on_auth_state_change(log_auth_event)
    return service


def read_caller_tokens(request: Request) -> tuple[str | None, str | None]:
    """Return (access_token, refresh_token) sent by the caller, either may be None."""
    access_token = None
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        access_token = credentials.strip()
    refresh_token = request.headers.get(REFRESH_TOKEN_HEADER, "").strip() or None
    return access_token, refresh_token


async def try_get_session(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
) -> SessionInfo | None:
    """Return the caller's verified session, or None.

    Never raises -- callers that need a hard 401 should use require_session().
    """
    access_token, refresh_token = read_caller_tokens(request)
    if access_token is None:
        return None
    try:
        response = await auth.get_user(access_token)
    except (AuthError, OperationTimeoutError) as exc:
        logger.warning("Token verification failed: %s", exc)
        return None
    user = getattr(response, "user", None)
    if user is None:
        return None
    return SessionInfo.from_user(user, access_token, refresh_token)


async def require_session(session: SessionInfo | None = Depends(try_get_session)) -> SessionInfo:
    """Require a verified caller. Raises HTTP 401 otherwise."""
    if session is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return session
