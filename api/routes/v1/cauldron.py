"""
api/routes/v1/cauldron.py -- Proxy to the Cauldron prompt validation service.

POST /api/v1/cauldron/validate forwards {"content": ...} to
{CAULDRON_BASE_URL}/v1/validate and relays the verdict. The upstream call is
bounded by with_timeout("cauldronValidate", ..., CAULDRON_TIMEOUT_MS).

Responses:
  400 missing_content      -- content absent or blank
  502 cauldron_failed      -- upstream answered non-2xx
  502 invalid_response     -- upstream payload is not JSON or lacks "status"
  504 timeout              -- deadline elapsed (app-level handler)
  200                      -- upstream payload, unchanged
"""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, HTTPException, Request

from api.models import CauldronValidateRequest
from core.config import get_settings
from core.timeout import with_timeout

logger = logging.getLogger("sociosim.api.cauldron")

router = APIRouter()


@router.post("/cauldron/validate")
async def validate(request: Request, body: CauldronValidateRequest) -> dict:
    content = (body.content or "").strip()
    if not content:
        raise HTTPException(
            status_code=400,
            detail={"code": "missing_content", "message": "Missing content"},
        )

    cfg = get_settings()
    http: httpx.AsyncClient = request.app.state.http_client
    url = f"{cfg.cauldron_base_url.rstrip('/')}/v1/validate"

    try:
        resp = await with_timeout(
            "cauldronValidate",
            http.post(url, json={"content": content}),
            cfg.cauldron_timeout_ms,
        )
    except httpx.HTTPError as exc:
        logger.error("Cauldron request failed: %s", exc)
        raise HTTPException(
            status_code=502,
            detail={"code": "cauldron_failed", "message": "Cauldron validation failed"},
        ) from exc

    if not resp.is_success:
        logger.error("Cauldron error %d: %s", resp.status_code, resp.text or resp.reason_phrase)
        raise HTTPException(
            status_code=502,
            detail={"code": "cauldron_failed", "message": "Cauldron validation failed"},
        )

    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict) or not payload.get("status"):
        logger.error("Cauldron returned an invalid response")
        raise HTTPException(
            status_code=502,
            detail={"code": "invalid_response", "message": "Invalid cauldron response"},
        )
    return payload
