"""
SMS channel.

Inbound: Twilio-style form posts (From, Body, MessageSid).
Outbound: replies rendered as plain text with numbered options, split
into 160-character parts at word boundaries and posted to the gateway.
A retried send resumes from the first part the gateway has not accepted.
"""

import logging
import re
from typing import Any

import httpx

import config
from triage.errors import ChannelDeliveryError, ValidationError
from triage.models import Button, InboundMessage, OutboundMessage, Platform

logger = logging.getLogger(__name__)


def normalize_phone(raw: str) -> str:
    """Digits only, +91 for bare 10-digit Indian numbers, always '+'-prefixed."""
    digits = re.sub(r"\D", "", raw or "")
    if len(digits) == 10:
        digits = "91" + digits
    return "+" + digits


def render_options(text: str, buttons: list[Button]) -> str:
    if not buttons:
        return text
    lines = [text, "", "Options:"]
    lines += [f"{i}. {b.title}" for i, b in enumerate(buttons, start=1)]
    lines += ["", "Reply with option number (1, 2, etc.)"]
    return "\n".join(lines)


def split_message(text: str, max_length: int = config.SMS_MAX_LENGTH) -> list[str]:
    """
    Split text into SMS-sized parts.

    A part is cut at its last space only when that space falls in the last
    fifth of the part; otherwise it is cut hard at max_length.
    """
    if len(text) <= max_length:
        return [text]

    parts = []
    remaining = text
    while remaining:
        part = remaining[:max_length]
        if len(remaining) > max_length:
            last_space = part.rfind(" ")
            if last_space > max_length * 0.8:
                part = part[:last_space]
        parts.append(part)
        remaining = remaining[len(part):].strip()
    return parts


def prepare_parts(text: str, max_length: int = config.SMS_MAX_LENGTH, max_parts: int = config.SMS_MAX_PARTS) -> list[str]:
    """Split into parts; overly long replies are truncated to one part."""
    parts = split_message(text, max_length)
    if len(parts) > max_parts:
        return [text[: max_length * max_parts - 50] + "... (continued)"]
    if len(parts) > 1:
        return [f"({i}/{len(parts)}) {p}" for i, p in enumerate(parts, start=1)]
    return parts


class SmsAdapter:
    platform = Platform.SMS

    def __init__(
        self,
        gateway_url: str = config.SMS_GATEWAY_URL,
        api_key: str = config.SMS_API_KEY,
        sender_id: str = config.SMS_SENDER_ID,
        client: httpx.AsyncClient | None = None,
    ):
        self.gateway_url = gateway_url
        self.api_key = api_key
        self.sender_id = sender_id
        self.client = client or httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS)

    def parse(self, form: dict[str, Any]) -> list[InboundMessage]:
        sender = form.get("From", "")
        if not sender:
            raise ValidationError("SMS webhook is missing 'From'")
        return [InboundMessage.build(
            user_id=normalize_phone(sender),
            platform=Platform.SMS,
            text=form.get("Body"),
            language=form.get("language"),
            message_id=form.get("MessageSid"),
        )]

    async def send(self, message: OutboundMessage) -> None:
        if not self.gateway_url:
            raise ChannelDeliveryError("SMS gateway URL is not configured")
        to = normalize_phone(message.user_id)
        parts = prepare_parts(render_options(message.text, message.buttons))
        # A retry resumes after the last part the gateway accepted
        for part in parts[message.delivered_parts:]:
            try:
                resp = await self.client.post(
                    self.gateway_url,
                    data={"To": to, "From": self.sender_id, "Body": part},
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error("SMS send to %s failed: %s", to, exc)
                raise ChannelDeliveryError(str(exc)) from exc
            message.delivered_parts += 1

    async def aclose(self) -> None:
        await self.client.aclose()
