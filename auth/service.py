"""
auth/service.py -- AuthService: the only entry point to the auth provider.

An AuthService wraps one provider auth client. The HTTP layer builds a fresh,
unpersisted client per request, so a session set on it belongs to that
request's caller and nobody else. Every call still goes through the shared
SerialQueue: at most one provider call is in flight per process and each is
bounded by its own deadline. Calling the auth client directly from anywhere
else voids that guarantee.

Provider results come back unchanged. Provider errors (supabase AuthError
and subclasses) propagate verbatim; deadline expiry surfaces as
core.timeout.OperationTimeoutError. Neither is logged here -- the caller
decides what the user sees.

on_auth_state_change() is a subscription, not a provider call, so it is not
queued.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from auth.models import AuthTimeouts
from auth.queue import SerialQueue, auth_queue


class AuthService:
    """Queued, deadline-bounded facade over a Supabase auth client.

    Args:
        auth:     The provider's auth client (supabase_auth AsyncGoTrueClient).
        queue:    Lane to serialize on. Defaults to the process-wide auth_queue.
        timeouts: Per-operation deadlines. Defaults to AuthTimeouts().
    """

    def __init__(self, auth: Any, queue: SerialQueue | None = None, timeouts: AuthTimeouts | None = None) -> None:
        self._auth = auth
        self._queue = queue if queue is not None else auth_queue
        self.timeouts = timeouts or AuthTimeouts()

    @property
    def queue(self) -> SerialQueue:
        return self._queue

    async def get_session(self):
        return await self._queue.submit(
            "auth.getSession",
            lambda: self._auth.get_session(),
            self.timeouts.get_session_ms,
        )

    async def sign_in_with_password(self, email: str, password: str):
        return await self._queue.submit(
            "auth.signInWithPassword",
            lambda: self._auth.sign_in_with_password({"email": email, "password": password}),
            self.timeouts.sign_in_ms,
        )

    async def sign_out_local(self):
        """End the session held by this process only (other devices stay signed in)."""
        return await self._queue.submit(
            "auth.signOutLocal",
            lambda: self._auth.sign_out({"scope": "local"}),
            self.timeouts.sign_out_ms,
        )

    async def set_session(self, access_token: str, refresh_token: str):
        return await self._queue.submit(
            "auth.setSession",
            lambda: self._auth.set_session(access_token, refresh_token),
            self.timeouts.set_session_ms,
        )

    async def exchange_code_for_session(self, code: str, code_verifier: str | None = None):
        params = {"auth_code": code}
        if code_verifier:
            params["code_verifier"] = code_verifier
        return await self._queue.submit(
            "auth.exchangeCodeForSession",
            lambda: self._auth.exchange_code_for_session(params),
            self.timeouts.exchange_code_ms,
        )

    async def update_user(self, attributes: dict):
        return await self._queue.submit(
            "auth.updateUser",
            lambda: self._auth.update_user(attributes),
            self.timeouts.update_user_ms,
        )

    async def get_user(self, access_token: str):
        """Verify an access token with the provider. Returns a UserResponse or None."""
        return await self._queue.submit(
            "auth.getUser",
            lambda: self._auth.get_user(access_token),
            self.timeouts.get_user_ms,
        )

    async def reset_password_for_email(self, email: str, redirect_to: str):
        return await self._queue.submit(
            "auth.resetPasswordForEmail",
            lambda: self._auth.reset_password_for_email(email, {"redirect_to": redirect_to}),
            self.timeouts.reset_password_ms,
        )


    def on_auth_state_change(self, callback: Callable[[str, Any], None]):
        """Subscribe to session changes. Returns the provider's subscription."""
        return self._auth.on_auth_state_change(callback)
