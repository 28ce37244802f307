# channels/channel_adapter.py
"""
Channel Adapter
Turns a channel-neutral Reply into what a channel can carry.

WEB returns the reply as-is. WHATSAPP normalizes the phone number, splits
long text on line boundaries and sends through the MessageTransport.
Delivery problems are reported in the DeliveryOutcome, never raised,
except for an invalid destination which is a ValidationError raised
before any transport call.
"""

import re
from typing import List, Optional

from loguru import logger

from ..errors import ValidationError
from ..providers.base import MessageTransport
from ..schemas.agent_schemas import Channel, DeliveryOutcome, Reply, ReplyButton

WHATSAPP_TEXT_LIMIT = 4000
WHATSAPP_INTERACTIVE_LIMIT = 1024
WHATSAPP_MAX_BUTTONS = 3
WHATSAPP_BUTTON_TITLE_LIMIT = 20


def normalize_phone(raw: Optional[str], default_country_code: str = "91") -> str:
    """
    Strip non-digits and validate length (10 to 13 digits).
    A bare 10-digit number gets the default country code.
    """
    digits = re.sub(r"\D", "", raw or "")
    if not 10 <= len(digits) <= 13:
        raise ValidationError(f"Invalid WhatsApp number: {raw!r}", field="destination")
    if len(digits) == 10:
        digits = f"{default_country_code}{digits}"
    return digits


def split_text(text: str, limit: int) -> List[str]:
    """Split on line boundaries; a single line longer than limit is cut hard."""
    chunks: List[str] = []
    current = ""

    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]

        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate

    if current or not chunks:
        chunks.append(current)
    return chunks


class ChannelAdapter:
    """Delivers replies to the web response or a WhatsApp number."""

    def __init__(
        self,
        transport: Optional[MessageTransport] = None,
        default_country_code: str = "91"
    ):
        self.transport = transport
        self.default_country_code = default_country_code

    def chunk_reply(self, reply: Reply) -> List[str]:
        """Text chunks for WhatsApp; the last one fits an interactive body when needed."""
        chunks = split_text(reply.text, WHATSAPP_TEXT_LIMIT)

        if reply.quick_replies or reply.buttons:
            last = chunks.pop()
            pieces = split_text(last, WHATSAPP_INTERACTIVE_LIMIT)
            if len(pieces) > 1:
                chunks.append("\n".join(pieces[:-1]))
            chunks.append(pieces[-1])

        return chunks

    def _buttons(self, reply: Reply) -> List[ReplyButton]:
        if reply.buttons:
            buttons = reply.buttons
        else:
            buttons = [
                ReplyButton(label=label, action=f"quick_reply_{i}")
                for i, label in enumerate(reply.quick_replies)
            ]
        return [
            ReplyButton(label=b.label[:WHATSAPP_BUTTON_TITLE_LIMIT], action=b.action)
            for b in buttons[:WHATSAPP_MAX_BUTTONS]
        ]

    async def deliver(
        self,
        reply: Reply,
        channel: Channel,
        destination: Optional[str] = None
    ) -> DeliveryOutcome:
        """
        Deliver a reply.

        Raises:
            ValidationError: WhatsApp destination missing or malformed
        """
        if channel == Channel.WEB:
            return DeliveryOutcome(channel=channel, delivered=True, reply=reply, chunks=1)

        phone = normalize_phone(destination, self.default_country_code)

        if self.transport is None:
            logger.error("WhatsApp transport not configured, reply not sent")
            return DeliveryOutcome(
                channel=channel,
                delivered=False,
                destination=phone,
                reply=reply,
                error="messaging provider not configured"
            )

        chunks = self.chunk_reply(reply)
        buttons = self._buttons(reply)
        sent = 0

        try:
            for index, chunk in enumerate(chunks):
                is_last = index == len(chunks) - 1
                ok = await self.transport.send(
                    phone,
                    chunk,
                    buttons=buttons if is_last and buttons else None
                )
                if not ok:
                    raise RuntimeError("transport reported failure")
                sent += 1
        except Exception as e:
            logger.error(f"WhatsApp delivery to ...{phone[-4:]} failed after {sent}/{len(chunks)} chunks: {e}")
            return DeliveryOutcome(
                channel=channel,
                delivered=False,
                destination=phone,
                reply=reply,
                chunks=sent,
                error=str(e)
            )

        logger.info(f"Delivered reply to ...{phone[-4:]} in {sent} message(s)")
        return DeliveryOutcome(channel=channel, delivered=True, destination=phone, reply=reply, chunks=sent)
