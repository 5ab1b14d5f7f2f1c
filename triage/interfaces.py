"""
Contracts for the engine's external collaborators.

The orchestrator only ever talks to these protocols. Concrete
implementations live in database/ (in-memory and MongoDB), channels/
(web, WhatsApp, SMS) and triage/replies.py / triage/llm_engine.py.

Repository-style collaborators are synchronous (pymongo is); the
orchestrator moves them off the event loop with asyncio.to_thread.
"""

from datetime import datetime
from typing import Any, Protocol

from triage.models import (
    AnalyticsEvent,
    AssessmentResult,
    EscalationReason,
    InboundMessage,
    OutboundMessage,
    Platform,
    Priority,
    Session,
    Worker,
)


class ChannelAdapter(Protocol):
    platform: Platform

    def parse(self, payload: Any) -> list[InboundMessage]:
        """Turn a provider payload into zero or more inbound messages."""
        ...

    async def send(self, message: OutboundMessage) -> None:
        """Deliver a reply. Raises ChannelDeliveryError."""
        ...


class SessionRepository(Protocol):
    def load(self, user_id: str, platform: Platform) -> Session | None:
        """Most recent non-terminal session for the pair, if any."""
        ...

    def save(self, session: Session) -> None:
        ...

    def list_expired(self, threshold_seconds: float, now: datetime) -> list[Session]:
        """Waiting sessions idle for longer than threshold_seconds."""
        ...


class MedicalRecordSink(Protocol):
    def write_assessment_result(self, user_id: str, result: AssessmentResult) -> None:
        ...


class HealthWorkerDispatch(Protocol):
    def find_available(self, location: str | None, urgency: Priority, language: str = "en") -> Worker | None:
        ...

    def notify(self, worker_id: str, session_id: str, reason: EscalationReason, urgency: Priority) -> None:
        """Raises DispatchUnavailable when the worker cannot be reached."""
        ...

    def release(self, worker_id: str) -> None:
        """Return a slot claimed by find_available once the escalation is over."""
        ...


class AnalyticsSink(Protocol):
    def emit(self, event: AnalyticsEvent) -> None:
        ...


class ReplyGenerator(Protocol):
    async def generate(self, intent: str, entities: dict[str, str], language: str) -> str:
        """Raises ReplyGenerationError."""
        ...
