"""
WhatsApp Cloud API channel.

Inbound: webhook payloads (entry → changes → value → messages), with
subscription verification and X-Hub-Signature-256 checking. The payload
carries no language, so it is read from the script of the text.
Outbound: plain text, or interactive reply buttons (max 3, titles cut
to 20 characters) via the Graph API.
"""

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Any

import httpx

import config
from triage.errors import ChannelDeliveryError, ValidationError
from triage.models import InboundMessage, OutboundMessage, Platform

logger = logging.getLogger(__name__)

MAX_BUTTONS = 3
MAX_BUTTON_TITLE = 20


class WhatsAppAdapter:
    platform = Platform.WHATSAPP

    def __init__(
        self,
        access_token: str = config.WHATSAPP_ACCESS_TOKEN,
        phone_number_id: str = config.WHATSAPP_PHONE_NUMBER_ID,
        api_url: str = config.WHATSAPP_API_URL,
        verify_token: str = config.WHATSAPP_VERIFY_TOKEN,
        app_secret: str = config.WHATSAPP_APP_SECRET,
        client: httpx.AsyncClient | None = None,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_url = api_url.rstrip("/")
        self.verify_token = verify_token
        self.app_secret = app_secret
        self.client = client or httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS)

    # ── Webhook Verification ───────────────────────────────────────────

    def verify_subscription(self, mode: str | None, token: str | None, challenge: str | None) -> str | None:
        """Return the challenge to echo back, or None if verification fails."""
        if mode == "subscribe" and self.verify_token and token == self.verify_token:
            return challenge
        return None

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        """Check X-Hub-Signature-256. Always passes when no app secret is configured."""
        if not self.app_secret:
            return True
        if not signature:
            return False
        expected = hmac.new(self.app_secret.encode(), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(f"sha256={expected}", signature)

    # ── Inbound ────────────────────────────────────────────────────────

    def parse(self, payload: dict[str, Any]) -> list[InboundMessage]:
        """Extract user messages from a webhook payload. Status updates and media are skipped."""
        messages = []
        for entry in payload.get("entry", []):
            for change in entry.get("changes", []):
                value = change.get("value", {})
                for msg in value.get("messages", []):
                    text = self._message_text(msg)
                    if text is None:
                        logger.info("Skipping unsupported WhatsApp message type: %s", msg.get("type"))
                        continue
                    try:
                        messages.append(InboundMessage.build(
                            user_id=msg.get("from", ""),
                            platform=Platform.WHATSAPP,
                            text=text,
                            timestamp=self._timestamp(msg.get("timestamp")),
                            message_id=msg.get("id"),
                        ))
                    except ValidationError as e:
                        logger.warning("Dropping WhatsApp message %s: %s", msg.get("id"), e)
        return messages

    @staticmethod
    def _message_text(msg: dict[str, Any]) -> str | None:
        kind = msg.get("type")
        if kind == "text":
            return msg.get("text", {}).get("body")
        if kind == "interactive":
            interactive = msg.get("interactive", {})
            reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
            return reply.get("title")
        if kind == "button":
            return msg.get("button", {}).get("text")
        return None

    @staticmethod
    def _timestamp(raw: str | None) -> datetime | None:
        if not raw:
            return None
        try:
            return datetime.fromtimestamp(int(raw), tz=timezone.utc)
        except (TypeError, ValueError):
            return None

    # ── Outbound ───────────────────────────────────────────────────────

    def build_payload(self, message: OutboundMessage) -> dict[str, Any]:
        if not message.buttons:
            return {
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": message.user_id,
                "type": "text",
                "text": {"preview_url": False, "body": message.text},
            }
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": message.user_id,
            "type": "interactive",
            "interactive": {
                "type": "button",
                "body": {"text": message.text},
                "action": {
                    "buttons": [
                        {
                            "type": "reply",
                            "reply": {"id": b.id, "title": b.title[:MAX_BUTTON_TITLE]},
                        }
                        for b in message.buttons[:MAX_BUTTONS]
                    ]
                },
            },
        }

    async def send(self, message: OutboundMessage) -> None:
        url = f"{self.api_url}/{self.phone_number_id}/messages"
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            resp = await self.client.post(url, json=self.build_payload(message), headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("WhatsApp HTTP error %s: %s", exc.response.status_code, exc.response.text)
            raise ChannelDeliveryError(f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("WhatsApp request failed: %s", exc)
            raise ChannelDeliveryError(str(exc)) from exc

    async def aclose(self) -> None:
        await self.client.aclose()
