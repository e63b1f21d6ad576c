"""Webhook receiver — FastAPI endpoint for GitHub webhook delivery.

Verifies the HMAC-SHA256 signature over the raw body, parses the event,
and hands it to the EventRouter, awaiting the full pipeline before
responding. The router and config are read from ``app.state`` (see
server.py), so the endpoint carries no module-level state.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from hookpilot.auth import verify_signature
from hookpilot.errors import MalformedPayload, SignatureInvalid
from hookpilot.models import GitHubEvent, WebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def parse_delivery(
    body: bytes,
    *,
    secret: str,
    signature: str,
    event_type: str,
    delivery_id: str,
) -> GitHubEvent:
    """Verify and parse one delivery.

    Raises:
        SignatureInvalid: The signature does not match the raw body.
        MalformedPayload: The body is not a JSON object.
    """
    if not verify_signature(body, secret, signature):
        raise SignatureInvalid("Invalid webhook signature", context={"delivery": delivery_id})

    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedPayload("Body is not valid JSON", context={"delivery": delivery_id}) from e
    if not isinstance(payload, dict):
        raise MalformedPayload("Body is not a JSON object", context={"delivery": delivery_id})

    action = payload.get("action")
    return GitHubEvent(
        delivery_id=delivery_id,
        event_type=event_type,
        action=action if isinstance(action, str) else None,
        payload=payload,
    )


def _render(response: WebhookResponse) -> JSONResponse:
    return JSONResponse(status_code=response.status_code, content=response.body)


@router.post("/webhook")
@router.post("/api/webhooks/github")
async def handle_webhook(
    request: Request,
    x_github_event: str = Header(...),
    x_github_delivery: str = Header(...),
    x_hub_signature_256: str = Header(default=""),
) -> JSONResponse:
    """Receive, verify, route and answer a GitHub webhook delivery."""
    state = request.app.state
    body = await request.body()

    try:
        event = parse_delivery(
            body,
            secret=state.config.webhook_secret,
            signature=x_hub_signature_256,
            event_type=x_github_event,
            delivery_id=x_github_delivery,
        )
    except SignatureInvalid:
        logger.warning("Invalid webhook signature for delivery %s", x_github_delivery)
        return JSONResponse(status_code=401, content={"error": "Invalid webhook signature"})
    except MalformedPayload as e:
        logger.warning("Malformed delivery %s: %s", x_github_delivery, e.message)
        return _render(WebhookResponse.acknowledged())

    logger.info(
        "Webhook received: %s (delivery=%s, sender=%s, repo=%s)",
        event.full_type,
        x_github_delivery,
        event.sender,
        event.repo_full_name,
    )

    response = await state.event_router.handle(event)
    return _render(response)
