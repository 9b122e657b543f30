"""
api/routes/v1/auth.py -- Session endpoints backed by the queued AuthService.

Routes:
  POST  /api/v1/auth/login           -- email/password sign-in
  POST  /api/v1/auth/logout          -- revoke the caller's session; always 200
  GET   /api/v1/auth/session         -- the caller's session summary (public)
  POST  /api/v1/auth/session         -- hydrate a session from recovery-link tokens
  POST  /api/v1/auth/callback        -- PKCE code exchange
  POST  /api/v1/auth/reset-password  -- send a password-recovery e-mail
  PATCH /api/v1/auth/user            -- password / metadata update (requires session)

Every provider call goes through the request's AuthService, never a Supabase
client directly, so calls from concurrent requests run one at a time in
arrival order. Each request has its own provider client: sessions are handed
back to the caller and identify it on later requests through
Authorization: Bearer (and X-Refresh-Token), see auth/dependencies.py.

Error policy:
  Provider errors are handled here, per route, and mapped to user-facing
  messages. An OperationTimeoutError that a route does not handle reaches the
  app-level handler and becomes 504.

Security:
  POST /login and POST /reset-password are rate-limited per IP.
  Cache-Control: no-store on every response carrying tokens.
"""

from __future__ import annotations

import logging
import re

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from supabase import AuthError

from api.limiter import limiter
from api.models import (
    EMAIL_PATTERN,
    CodeExchangeRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetRequest,
    SessionResponse,
    SetSessionRequest,
    UserResponse,
    UserUpdateRequest,
)
from auth.dependencies import get_auth_service, read_caller_tokens, require_session, try_get_session
from auth.models import SessionInfo
from auth.service import AuthService
from core.config import get_settings
from core.timeout import OperationTimeoutError

logger = logging.getLogger("sociosim.api.auth")

_settings = get_settings()

# Auth policy:
# - POST  /api/v1/auth/login:           public
# - POST  /api/v1/auth/logout:          public -- no credentials means nothing to revoke
# - GET   /api/v1/auth/session:         public -- answers {"authenticated": false} without a valid bearer
# - POST  /api/v1/auth/session:         public -- the tokens are the credential
# - POST  /api/v1/auth/callback:        public -- the code is the credential
# - POST  /api/v1/auth/reset-password:  public
# - PATCH /api/v1/auth/user:            requires session (require_session)
router = APIRouter()

_GENERIC_LOGIN_MESSAGE = "Impossible de vous connecter pour le moment. Veuillez réessayer."
_INVALID_LINK_MESSAGE = "Ce lien de validation est invalide ou expiré."
_EMAIL_RE = re.compile(EMAIL_PATTERN)


def classify_login_error(message: str | None) -> tuple[int, str, str]:
    """Map a provider sign-in error message to (status, code, user message)."""
    if not message:
        return 400, "login_failed", _GENERIC_LOGIN_MESSAGE
    if "banned" in message.lower():
        return 403, "account_banned", "Impossible de vous connecter. Contacter un administrateur du site."
    if message == "Invalid login credentials":
        return 401, "bad_credentials", "Identifiants incorrects. Merci de vérifier votre email et votre mot de passe."
    return 400, "login_failed", _GENERIC_LOGIN_MESSAGE


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content={"error": {"code": code, "message": message}})
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _session_payload(result) -> JSONResponse | None:
    """Return a no-store JSONResponse for the session in an AuthResponse, or None."""
    session = getattr(result, "session", None)
    if session is None or getattr(session, "user", None) is None:
        return None
    body = SessionResponse.from_info(SessionInfo.from_session(session))
    resp = JSONResponse(status_code=200, content=body.model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=SessionResponse)
async def login(
    request: Request,
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Sign in with email and password.

    Wrong credentials, banned accounts and other provider refusals each get
    their own code; the message never says which part was wrong.
    """
    logger.info("Sign-in attempt for %s", body.email)
    try:
        result = await auth.sign_in_with_password(body.email, body.password)
    except OperationTimeoutError as exc:
        logger.warning("Sign-in timed out: %s", exc)
        return _error(504, "timeout", "La connexion a expiré. Timeout.")
    except AuthError as exc:
        status_code, code, message = classify_login_error(getattr(exc, "message", str(exc)))
        logger.warning("Sign-in refused for %s: %s", body.email, code)
        return _error(status_code, code, message)

    resp = _session_payload(result)
    if resp is None:
        return _error(400, "login_failed", _GENERIC_LOGIN_MESSAGE)
    logger.info("Sign-in succeeded for %s", body.email)
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request, auth: AuthService = Depends(get_auth_service)) -> MessageResponse:
    """Revoke the caller's session (this device only).

    A provider error or timeout is only a warning: the caller drops its
    tokens either way.
    """
    access_token, refresh_token = read_caller_tokens(request)
    if access_token is None:
        return MessageResponse(message="Logged out.")
    try:
        await auth.set_session(access_token, refresh_token or "")
        await auth.sign_out_local()
    except (AuthError, OperationTimeoutError) as exc:
        logger.warning("Logout warning: %s", exc)
    return MessageResponse(message="Logged out.")


@router.get("/auth/session", response_model=SessionResponse)
async def get_session(session: SessionInfo | None = Depends(try_get_session)) -> JSONResponse:
    """Return the caller's session, or {"authenticated": false}."""
    body = SessionResponse.from_info(session) if session else SessionResponse.anonymous()
    resp = JSONResponse(status_code=200, content=body.model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/session", response_model=SessionResponse)
async def set_session(
    body: SetSessionRequest,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Hydrate the session from access/refresh tokens (password recovery links)."""
    try:
        result = await auth.set_session(body.access_token, body.refresh_token)
    except AuthError as exc:
        logger.warning("setSession refused: %s", getattr(exc, "message", exc))
        return _error(400, "invalid_session", _INVALID_LINK_MESSAGE)

    resp = _session_payload(result)
    if resp is None:
        return _error(400, "invalid_session", _INVALID_LINK_MESSAGE)
    return resp


@router.post("/auth/callback", response_model=SessionResponse)
async def exchange_code(
    body: CodeExchangeRequest,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Exchange a PKCE authorization code (email links, OAuth redirects) for a session."""
    try:
        result = await auth.exchange_code_for_session(body.code, body.code_verifier)
    except AuthError as exc:
        logger.warning("Code exchange refused: %s", getattr(exc, "message", exc))
        return _error(400, "invalid_code", _INVALID_LINK_MESSAGE)

    resp = _session_payload(result)
    if resp is None:
        return _error(400, "invalid_code", _INVALID_LINK_MESSAGE)
    return resp


@limiter.limit(_settings.reset_password_rate_limit)
@router.post("/auth/reset-password", response_model=MessageResponse)
async def request_password_reset(
    request: Request,
    body: PasswordResetRequest,
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Send a recovery e-mail linking back to {SITE_URL}/reset-password/confirm.

    The answer is the same whether or not an account exists for the address.
    """
    email = (body.email or "").strip()
    if not email:
        return _error(400, "missing_email", "Merci de fournir une adresse e-mail.")
    if not _EMAIL_RE.match(email):
        return _error(400, "invalid_email", "Le format de l'adresse e-mail est invalide.")

    normalized = email.lower()
    redirect_to = f"{_settings.site_url.rstrip('/')}/reset-password/confirm"
    try:
        await auth.reset_password_for_email(normalized, redirect_to)
    except AuthError as exc:
        logger.error("Recovery e-mail failed for %s: %s", normalized, getattr(exc, "message", exc))
        return _error(500, "reset_failed", "Impossible d'envoyer l'e-mail de réinitialisation.")
    logger.info("Recovery e-mail requested for %s", normalized)
    return MessageResponse(message="Recovery e-mail sent.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.patch("/auth/user", response_model=UserResponse)
async def update_user(
    body: UserUpdateRequest,
    session: SessionInfo = Depends(require_session),
    auth: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Update the caller's password and/or metadata.

    The caller's tokens are set on this request's provider client first; the
    update then applies to that session only.
    """
    try:
        await auth.set_session(session.access_token, session.refresh_token or "")
    except AuthError as exc:
        logger.warning("Session restore refused for %s: %s", session.user_id, getattr(exc, "message", exc))
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Session expirée. Merci de vous reconnecter."},
        ) from exc

    try:
        result = await auth.update_user(body.to_attributes())
    except AuthError as exc:
        message = getattr(exc, "message", None) or "Impossible de mettre à jour votre compte."
        logger.warning("updateUser refused for %s: %s", session.user_id, message)
        raise HTTPException(
            status_code=400,
            detail={"code": "update_failed", "message": message},
        ) from exc

    user = getattr(result, "user", None)
    if user is None:
        raise HTTPException(
            status_code=502,
            detail={"code": "update_failed", "message": "Provider returned no user after update."},
        )
    return UserResponse(
        user_id=str(user.id),
        email=getattr(user, "email", None),
        user_metadata=dict(getattr(user, "user_metadata", None) or {}),
    )
