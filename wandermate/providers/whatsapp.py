# providers/whatsapp.py
"""
WhatsApp Cloud API message transport (Graph API)
"""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ..schemas.agent_schemas import ReplyButton
from .base import HttpProvider, MessageTransport


class WhatsAppCloudTransport(HttpProvider, MessageTransport):
    """
    Sends text or interactive-button messages.

    Expects the destination already normalized and the body already sized;
    the channel adapter does both. Raises ProviderError subclasses on failure.
    """

    name = "messaging"

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v18.0",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(f"https://graph.facebook.com/{api_version}", timeout=timeout, client=client)
        self.phone_number_id = phone_number_id
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    def build_payload(
        self,
        destination: str,
        text: str,
        quick_replies: Optional[List[str]] = None,
        buttons: Optional[List[ReplyButton]] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": destination,
        }

        reply_buttons = [
            {"type": "reply", "reply": {"id": button.action, "title": button.label}}
            for button in (buttons or [])
        ]
        if not reply_buttons:
            reply_buttons = [
                {"type": "reply", "reply": {"id": f"quick_reply_{i}", "title": label}}
                for i, label in enumerate(quick_replies or [])
            ]

        if reply_buttons:
            payload["type"] = "interactive"
            payload["interactive"] = {
                "type": "button",
                "body": {"text": text},
                "action": {"buttons": reply_buttons},
            }
        else:
            payload["type"] = "text"
            payload["text"] = {"body": text}

        return payload

    async def send(
        self,
        destination: str,
        text: str,
        quick_replies: Optional[List[str]] = None,
        buttons: Optional[List[ReplyButton]] = None
    ) -> bool:
        payload = self.build_payload(destination, text, quick_replies, buttons)
        result = await self._request(
            "POST",
            f"/{self.phone_number_id}/messages",
            json=payload,
            headers=self._headers
        )
        message_ids = [m.get("id") for m in result.get("messages", [])]
        logger.debug(f"WhatsApp message sent to ...{destination[-4:]}: {message_ids}")
        return True
