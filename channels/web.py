"""
Web chat channel.

The web client posts JSON and gets the reply in the HTTP response.
Messages pushed outside a request (e.g. a health worker follow-up) are
queued per user until the client polls for them.
"""

from collections import defaultdict
from typing import Any

from triage.models import InboundMessage, OutboundMessage, Platform


def render(message: OutboundMessage) -> dict[str, Any]:
    body: dict[str, Any] = {
        "sessionId": message.session_id,
        "text": message.text,
        "escalated": message.escalated,
        "language": message.language,
    }
    if message.intent:
        body["intent"] = message.intent
    if message.buttons:
        body["buttons"] = [{"id": b.id, "title": b.title} for b in message.buttons]
    if not message.durable:
        body["durable"] = False
    return body


class WebAdapter:
    platform = Platform.WEB

    def __init__(self):
        self._outbox: dict[str, list[dict[str, Any]]] = defaultdict(list)

    def parse(self, payload: dict[str, Any]) -> list[InboundMessage]:
        """Raises ValidationError for a missing user id or empty text."""
        return [InboundMessage.build(
            user_id=payload.get("userId", ""),
            platform=payload.get("platform") or Platform.WEB,
            text=payload.get("text"),
            language=payload.get("language"),
            location=payload.get("location"),
            message_id=payload.get("messageId"),
        )]

    async def send(self, message: OutboundMessage) -> None:
        self._outbox[message.user_id].append(render(message))

    def drain(self, user_id: str) -> list[dict[str, Any]]:
        """Pending pushed messages for a user, oldest first."""
        return self._outbox.pop(user_id, [])
