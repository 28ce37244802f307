# api/whatsapp.py
"""
WhatsApp Webhook Endpoint
Meta Cloud API webhook: subscription verification and inbound messages.

Every inbound message is processed as session whatsapp_<digits> on the
WHATSAPP channel; the agent delivers the reply through the transport.
"""

import hashlib
import hmac
import json
import re
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from loguru import logger

from ..agents.travel_agent import TravelAgent, get_travel_agent
from ..config import settings
from ..errors import AgentError
from ..schemas.agent_schemas import Channel

router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp"])

# Placeholder text for messages the agent cannot read
_MEDIA_PLACEHOLDERS = {
    "audio": "[Voice message received]",
    "image": "[Image received]",
    "document": "[Document received]",
}


# ============================================
# Helper Functions
# ============================================

def verify_webhook_signature(body: bytes, signature: Optional[str], app_secret: str) -> bool:
    """X-Hub-Signature-256 check: HMAC-SHA256 of the raw body, constant-time compare."""
    if not signature:
        logger.warning("No WhatsApp signature provided")
        return False
    if not app_secret:
        logger.warning("WHATSAPP_APP_SECRET not configured")
        return False

    expected = hmac.new(app_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    received = signature.replace("sha256=", "").strip().lower()
    return hmac.compare_digest(expected, received)


def session_id_for(phone: str) -> str:
    return f"whatsapp_{re.sub(r'[^0-9]', '', phone or '')}"


def message_text(message: Dict[str, Any]) -> str:
    """Text of an inbound message; button taps use the button title."""
    message_type = message.get("type", "")

    if message_type == "text":
        return (message.get("text") or {}).get("body", "")

    if message_type == "interactive":
        interactive = message.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return reply.get("title", "")

    if message_type == "button":
        return (message.get("button") or {}).get("text", "")

    return _MEDIA_PLACEHOLDERS.get(message_type, f"[{message_type} message received]")


def extract_messages(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten entry[].changes[].value.messages[] of a whatsapp_business_account payload."""
    if data.get("object") != "whatsapp_business_account":
        return []

    messages = []
    for entry in data.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            messages.extend(value.get("messages") or [])
    return messages


# ============================================
# Endpoints
# ============================================

@router.get("/webhook")
async def verify_webhook(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge")
):
    """Subscription handshake: echo the challenge when the verify token matches."""
    if mode == "subscribe" and settings.WHATSAPP_VERIFY_TOKEN and token == settings.WHATSAPP_VERIFY_TOKEN:
        logger.info("WhatsApp webhook verified")
        return PlainTextResponse(challenge or "", status_code=200)

    logger.warning("WhatsApp webhook verification rejected")
    return PlainTextResponse("Forbidden", status_code=403)


@router.post("/webhook")
async def receive_webhook(request: Request, agent: TravelAgent = Depends(get_travel_agent)):
    body = await request.body()

    if not verify_webhook_signature(body, request.headers.get("x-hub-signature-256"), settings.WHATSAPP_APP_SECRET):
        logger.error("Invalid WhatsApp signature")
        return PlainTextResponse("Unauthorized", status_code=401)

    try:
        data = json.loads(body)
    except ValueError:
        return PlainTextResponse("Bad Request", status_code=400)

    for message in extract_messages(data):
        sender = message.get("from", "")
        text = message_text(message)
        logger.info(f"WhatsApp message from ...{sender[-4:]}, type: {message.get('type')}")

        try:
            result = await agent.process_message(
                text,
                session_id=session_id_for(sender),
                channel=Channel.WHATSAPP,
                destination=sender
            )
        except AgentError as e:
            logger.error(f"WhatsApp message from ...{sender[-4:]} not processed: {e}")
            continue

        if result.delivery and not result.delivery.delivered:
            logger.warning(f"Reply to ...{sender[-4:]} not delivered: {result.delivery.error}")

    return PlainTextResponse("OK", status_code=200)
