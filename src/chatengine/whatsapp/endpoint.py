"""WhatsApp Cloud API webhook.

GET answers the subscription handshake. POST receives message
notifications, runs a turn for each message and acknowledges with 200 so
the platform does not redeliver.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from chatengine.config.settings import get_settings
from chatengine.dispatcher import Dispatcher
from chatengine.whatsapp.models import InboundMessage, WebhookPayload

logger = logging.getLogger(__name__)

webhook_router = APIRouter(tags=["WhatsApp Webhook"])


def get_dispatcher(request: Request) -> Dispatcher:
    """Get the dispatcher from app state.

    Raises:
        HTTPException: If the engine is not initialized.
    """
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return dispatcher


@webhook_router.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    mode: Annotated[str | None, Query(alias="hub.mode")] = None,
    verify_token: Annotated[str | None, Query(alias="hub.verify_token")] = None,
    challenge: Annotated[str | None, Query(alias="hub.challenge")] = None,
) -> PlainTextResponse:
    """Answer the webhook subscription handshake."""
    expected = get_settings().whatsapp_verify_token
    if mode == "subscribe" and expected and verify_token == expected:
        logger.info("Webhook verified")
        return PlainTextResponse(challenge or "")
    logger.warning("Webhook verification failed (mode=%s)", mode)
    raise HTTPException(status_code=403, detail="Verification failed")


@webhook_router.post("/webhook")
async def receive_webhook(request: Request) -> dict[str, str]:
    """Run a turn for every message in a notification.

    Malformed payloads and failed turns are logged and still acknowledged.
    """
    dispatcher = get_dispatcher(request)

    try:
        body = await request.json()
    except ValueError as e:
        logger.warning("Ignoring webhook body that is not JSON: %s", e)
        return {"status": "ignored"}

    try:
        payload = WebhookPayload.model_validate(body)
        messages = payload.inbound_messages()
    except ValidationError as e:
        logger.warning("Ignoring malformed webhook payload: %s", e.error_count())
        return {"status": "ignored"}

    for message in messages:
        await _dispatch(dispatcher, message)
    return {"status": "ok"}


async def _dispatch(dispatcher: Dispatcher, message: InboundMessage) -> None:
    try:
        await dispatcher.handle(message)
    except Exception:
        logger.exception(
            "Turn failed (sender_id=%s, message_id=%s)", message.sender_id, message.message_id
        )
