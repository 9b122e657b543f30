"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond construction).
Provider objects (supabase Session / User) stay inside auth/; routes work with
these shapes instead.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from core.config import Settings


@dataclass(frozen=True)
class AuthTimeouts:
    """Deadline per queued auth operation, in milliseconds.

    Defaults are the values the front-end has always used: sign-in gets the
    longest deadline among session calls, local sign-out the shortest. The
    reset e-mail request waits longest since the provider sends mail inline.
    """

    get_session_ms: int = 10000
    sign_in_ms: int = 15000
    sign_out_ms: int = 2000
    set_session_ms: int = 8000
    exchange_code_ms: int = 8000
    update_user_ms: int = 10000
    get_user_ms: int = 10000
    reset_password_ms: int = 20000

    @classmethod
    def from_settings(cls, settings: Settings) -> AuthTimeouts:
        return cls(
            get_session_ms=settings.auth_get_session_timeout_ms,
            sign_in_ms=settings.auth_sign_in_timeout_ms,
            sign_out_ms=settings.auth_sign_out_timeout_ms,
            set_session_ms=settings.auth_set_session_timeout_ms,
            exchange_code_ms=settings.auth_exchange_code_timeout_ms,
            update_user_ms=settings.auth_update_user_timeout_ms,
            get_user_ms=settings.auth_get_user_timeout_ms,
            reset_password_ms=settings.auth_reset_password_timeout_ms,
        )


@dataclass
class SessionInfo:
    """The parts of a provider session the HTTP layer exposes.

    expires_at is a Unix timestamp (seconds) or None when unknown, which is
    the case for sessions rebuilt from a caller's bearer token. user_metadata
    carries firstName / lastName from registration.
    """

    access_token: str
    refresh_token: str | None
    user_id: str
    email: str | None = None
    expires_at: int | None = None
    user_metadata: dict[str, Any] | None = None

    @classmethod
    def from_session(cls, session: Any) -> SessionInfo:
        return cls.from_user(
            session.user,
            session.access_token,
            session.refresh_token,
            expires_at=getattr(session, "expires_at", None),
        )

    @classmethod
    def from_user(
        cls,
        user: Any,
        access_token: str,
        refresh_token: str | None,
        expires_at: int | None = None,
    ) -> SessionInfo:
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            user_id=str(user.id),
            email=getattr(user, "email", None),
            expires_at=expires_at,
            user_metadata=dict(getattr(user, "user_metadata", None) or {}),
        )
