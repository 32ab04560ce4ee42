"""
WhatsApp Cloud API webhook.

The POST handler answers 200 before the bot runs in a background task.
Only a failed signature check is refused.
"""

import json
import logging
import aiosqlite
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from app.config import settings
from app.dependencies import get_db_path, get_whatsapp_client
from app.models.chat_sessions import mark_processed
from app.services.bot import ChatBot
from app.services.messages import (
    InboundMessage,
    PayloadError,
    extract_message,
    is_status_update,
    parse_payload,
)
from app.services.whatsapp import WhatsAppClient, WhatsAppError, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])

ACK = "EVENT_RECEIVED"
UNSUPPORTED_REPLY = "Sorry, I can only read text messages. Send *menu* to start."


async def process_message(db_path: str, client: WhatsAppClient, message: InboundMessage):
    """Run the bot for one message and send the reply. Never raises."""
    try:
        if message.is_text:
            reply = await ChatBot(db_path).handle(message.sender, message.text, message.profile_name)
        else:
            logger.info("Unsupported %s message from %s", message.type, message.sender)
            reply = UNSUPPORTED_REPLY
        await client.send_text(message.sender, reply)
    except WhatsAppError as e:
        logger.error("Could not deliver reply for %s: %s", message.message_id, e)
    except Exception:
        logger.exception("Failed to process message %s from %s", message.message_id, message.sender)


@router.get("/webhook")
async def verify_webhook(
    hub_mode: str | None = Query(None, alias="hub.mode"),
    hub_challenge: str | None = Query(None, alias="hub.challenge"),
    hub_verify_token: str | None = Query(None, alias="hub.verify_token"),
):
    """Subscription handshake from the Meta dashboard."""
    if (
        hub_mode == "subscribe"
        and settings.WHATSAPP_VERIFY_TOKEN
        and hub_verify_token == settings.WHATSAPP_VERIFY_TOKEN
        and hub_challenge
    ):
        logger.info("Webhook verified")
        return PlainTextResponse(hub_challenge)

    logger.warning("Webhook verification failed: mode=%s", hub_mode)
    return PlainTextResponse("Verification failed", status_code=403)


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db_path: str = Depends(get_db_path),
    client: WhatsAppClient = Depends(get_whatsapp_client),
):
    body = await request.body()

    if settings.WHATSAPP_APP_SECRET:
        signature = request.headers.get("X-Hub-Signature-256", "")
        if not verify_signature(body, signature, settings.WHATSAPP_APP_SECRET):
            logger.warning("Rejected webhook with invalid signature")
            return PlainTextResponse("Invalid signature", status_code=401)

    try:
        payload = parse_payload(json.loads(body))
        if is_status_update(payload):
            logger.debug("Status update acknowledged")
            return PlainTextResponse(ACK)
        message = extract_message(payload)
    except (json.JSONDecodeError, UnicodeDecodeError, PayloadError) as e:
        logger.warning("Ignoring malformed webhook payload: %s", e)
        return PlainTextResponse(ACK)

    if message is None:
        logger.info("Webhook payload without a message ignored")
        return PlainTextResponse(ACK)

    try:
        first_delivery = await mark_processed(db_path, message.message_id, message.sender)
    except aiosqlite.Error:
        logger.exception("Could not record message %s; dropping it", message.message_id)
        return PlainTextResponse(ACK)
    if not first_delivery:
        logger.debug("Duplicate message %s ignored", message.message_id)
        return PlainTextResponse(ACK)

    background_tasks.add_task(process_message, db_path, client, message)
    return PlainTextResponse(ACK)
