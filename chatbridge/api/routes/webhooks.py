"""
Provider webhook endpoints.

- POST /webhooks/{provider}/{tenant_id}/{token}: inbound messages and status callbacks
- GET  /webhooks/{provider}/{tenant_id}/{token}: unauthenticated liveness probe

GreenAPI posts JSON; Twilio posts ``application/x-www-form-urlencoded`` forms.
"""

import json
import time
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request

from chatbridge.api.dependencies import get_webhook_service
from chatbridge.core.logging.logger import get_logger
from chatbridge.services.webhook_service import WebhookService

logger = get_logger(__name__)

router = APIRouter(
    prefix="/webhooks",
    tags=["Webhooks"],
    responses={
        401: {"description": "Invalid webhook token"},
        403: {"description": "Invalid authorization header"},
        404: {"description": "Tenant has no active configuration for this provider"},
    },
)


async def read_payload(request: Request) -> dict[str, Any]:
    """Decode a JSON or form-encoded body; anything undecodable becomes an empty payload."""
    raw = await request.body()
    if not raw:
        return {}
    content_type = request.headers.get("content-type", "")
    try:
        if "application/x-www-form-urlencoded" in content_type:
            return dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True))
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Undecodable webhook body ({content_type}): {e}")
        return {}
    return payload if isinstance(payload, dict) else {}


@router.post("/{provider}/{tenant_id}/{token}", summary="Receive provider webhook")
async def receive_webhook(
    provider: str,
    tenant_id: int,
    token: str,
    request: Request,
    webhooks: WebhookService = Depends(get_webhook_service),
) -> dict[str, Any]:
    payload = await read_payload(request)
    result = await webhooks.handle(tenant_id, provider, token, request.headers, payload)
    response: dict[str, Any] = {"status": "ok", "result": result.status}
    response.update(result.model_dump(exclude_none=True, exclude={"status"}))
    return response


@router.get("/{provider}/{tenant_id}/{token}", summary="Webhook liveness probe")
async def webhook_liveness(provider: str, tenant_id: int, token: str) -> dict[str, Any]:
    return {"status": "ok", "provider": provider, "timestamp": time.time()}
