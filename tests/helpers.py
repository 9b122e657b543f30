"""
tests/helpers.py -- Provider doubles and small coroutine helpers.

Kept out of conftest.py so test modules can import them directly.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from supabase import AuthApiError


def provider_error(message: str, status: int = 400) -> AuthApiError:
    return AuthApiError(message, status, None)


def make_session(
    user_id: str = "user-1",
    email: str | None = "ana.martin@univ.fr",
    metadata: dict | None = None,
) -> SimpleNamespace:
    user = SimpleNamespace(id=user_id, email=email, user_metadata=metadata or {})
    return SimpleNamespace(
        access_token="access-abc",
        refresh_token="refresh-xyz",
        expires_at=1767225600,
        user=user,
    )


def make_auth_response(session: SimpleNamespace | None) -> SimpleNamespace:
    return SimpleNamespace(session=session, user=session.user if session else None)


def make_user_response(session: SimpleNamespace | None = None) -> SimpleNamespace:
    """What get_user(jwt) returns for a valid token."""
    return SimpleNamespace(user=(session or make_session()).user)


async def sleep_then(seconds: float, value=None):
    await asyncio.sleep(seconds)
    return value


async def raise_after(seconds: float, exc: BaseException):
    await asyncio.sleep(seconds)
    raise exc


class FakeSupabaseAuth:
    """AsyncMock-backed replacement for the provider's AsyncGoTrueClient."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.get_session = AsyncMock(return_value=None)
        self.get_user = AsyncMock(return_value=make_user_response())
        self.sign_in_with_password = AsyncMock(return_value=make_auth_response(make_session()))
        self.sign_out = AsyncMock(return_value=None)
        self.set_session = AsyncMock(return_value=make_auth_response(make_session()))
        self.exchange_code_for_session = AsyncMock(return_value=make_auth_response(make_session()))
        self.reset_password_for_email = AsyncMock(return_value=None)
        self.update_user = AsyncMock()
        self.on_auth_state_change = MagicMock(return_value=MagicMock())
