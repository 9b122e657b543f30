"""
auth/client.py -- Supabase auth client construction.

The server never keeps a provider session of its own. new_auth_client()
builds a bare, unpersisted auth client for one request; whatever session
that request sets on it (sign-in, token hydration, code exchange) is dropped
with the client. What the process does share is the httpx transport from
create_auth_transport().

SUPABASE_INTERNAL_URL, when set and different from SUPABASE_URL, only changes
where requests travel (Docker deployments where localhost is unreachable but
host.docker.internal is). The client itself is still built on the public URL.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import httpx
from supabase_auth import AsyncGoTrueClient

from core.config import Settings

logger = logging.getLogger("sociosim.auth.client")

RequestHook = Callable[[httpx.Request], Awaitable[None]]


def public_supabase_url(settings: Settings) -> str:
    """Return SUPABASE_URL without a trailing slash.

    Raises RuntimeError if the public configuration is incomplete.
    """
    if not settings.supabase_url or not settings.supabase_anon_key:
        raise RuntimeError("Missing Supabase public configuration")
    return settings.supabase_url.rstrip("/")


def internal_rewrite_hook(settings: Settings) -> RequestHook | None:
    """Return an httpx request hook sending public-URL traffic to the internal URL.

    None when SUPABASE_INTERNAL_URL is unset or equal to SUPABASE_URL.
    """
    internal_url = settings.supabase_internal_url.rstrip("/")
    public_url = settings.supabase_url.rstrip("/")
    if not internal_url or internal_url == public_url:
        return None
    public = httpx.URL(public_url)
    internal = httpx.URL(internal_url)

    async def rewrite(request: httpx.Request) -> None:
        url = request.url
        if (url.scheme, url.host, url.port) != (public.scheme, public.host, public.port):
            return
        request.url = url.copy_with(scheme=internal.scheme, host=internal.host, port=internal.port)
        request.headers["Host"] = request.url.netloc.decode("ascii")

    return rewrite


def create_auth_transport(settings: Settings) -> httpx.AsyncClient:
    """Build the process-wide httpx client every per-request auth client uses."""
    hook = internal_rewrite_hook(settings)
    if hook is not None:
        logger.info("Supabase traffic routed to %s", settings.supabase_internal_url)
    return httpx.AsyncClient(
        follow_redirects=True,
        event_hooks={"request": [hook]} if hook is not None else None,
    )


def new_auth_client(settings: Settings, http_client: httpx.AsyncClient) -> AsyncGoTrueClient:
    """Build a throwaway auth client for one request.

    Implicit flow: recovery links carry tokens for POST /auth/session, and a
    PKCE code exchange must bring its own code_verifier since nothing is
    stored between requests.
    """
    url = public_supabase_url(settings)
    key = settings.supabase_anon_key
    return AsyncGoTrueClient(
        url=f"{url}/auth/v1",
        headers={"apiKey": key, "Authorization": f"Bearer {key}"},
        auto_refresh_token=False,
        persist_session=False,
        flow_type="implicit",
        http_client=http_client,
    )
