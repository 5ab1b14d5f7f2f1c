"""
In-memory collaborators.

Used when no MongoDB URI is configured and throughout the tests. They
follow the same contracts as the MongoDB repositories, including
copy-on-read/write for sessions.
"""

import logging
import threading
from datetime import datetime

from triage.errors import DispatchUnavailable
from triage.models import (
    AnalyticsEvent,
    AssessmentResult,
    EscalationReason,
    Platform,
    Priority,
    Session,
    SessionStatus,
    Worker,
)

logger = logging.getLogger(__name__)


class InMemorySessionRepository:
    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def load(self, user_id: str, platform: Platform) -> Session | None:
        with self._lock:
            candidates = [
                s for s in self._sessions.values()
                if s.user_id == user_id and s.platform == platform and not s.status.is_terminal
            ]
            if not candidates:
                return None
            latest = max(candidates, key=lambda s: s.last_activity_at)
            return latest.model_copy(deep=True)

    def save(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)

    def list_expired(self, threshold_seconds: float, now: datetime) -> list[Session]:
        with self._lock:
            return [
                s.model_copy(deep=True) for s in self._sessions.values()
                if s.status == SessionStatus.WAITING
                and (now - s.last_activity_at).total_seconds() > threshold_seconds
            ]

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def all(self) -> list[Session]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._sessions.values()]


class InMemoryMedicalRecordSink:
    def __init__(self):
        self.records: list[tuple[str, AssessmentResult]] = []

    def write_assessment_result(self, user_id: str, result: AssessmentResult) -> None:
        self.records.append((user_id, result))


DEFAULT_ROSTER: list[Worker] = [
    Worker(
        id="hw_001",
        name="Dr. Priya Sharma",
        phone_number="+919876543210",
        specialization=["general_medicine", "pediatrics"],
        languages=["en", "hi", "te"],
        current_load=2,
        max_concurrent_chats=5,
        is_online=True,
    ),
]


class InMemoryHealthWorkerDispatch:
    """Picks the least-loaded online worker who speaks the user's language."""

    def __init__(self, workers: list[Worker] | None = None):
        roster = DEFAULT_ROSTER if workers is None else workers
        self.workers: dict[str, Worker] = {w.id: w.model_copy(deep=True) for w in roster}
        self.notifications: list[dict] = []
        self._lock = threading.Lock()

    def find_available(self, location: str | None, urgency: Priority, language: str = "en") -> Worker | None:
        with self._lock:
            eligible = [
                w for w in self.workers.values()
                if w.has_capacity and language in w.languages
            ]
            if not eligible:
                return None
            local = [w for w in eligible if location and w.location == location]
            worker = min(local or eligible, key=lambda w: w.current_load)
            worker.current_load += 1
            return worker.model_copy(deep=True)

    def notify(self, worker_id: str, session_id: str, reason: EscalationReason, urgency: Priority) -> None:
        with self._lock:
            worker = self.workers.get(worker_id)
            if worker is None or not worker.is_online:
                raise DispatchUnavailable(f"Worker {worker_id} is not reachable")
            self.notifications.append({
                "worker_id": worker_id,
                "session_id": session_id,
                "reason": reason,
                "urgency": urgency,
            })

    def release(self, worker_id: str) -> None:
        with self._lock:
            worker = self.workers.get(worker_id)
            if worker is not None and worker.current_load > 0:
                worker.current_load -= 1


class LoggingAnalyticsSink:
    """Writes analytics events to the log."""

    def emit(self, event: AnalyticsEvent) -> None:
        logger.info(
            "[Analytics] %s session=%s platform=%s language=%s %s",
            event.name, event.session_id, event.platform.value, event.language, event.properties,
        )


class InMemoryAnalyticsSink:
    def __init__(self):
        self.events: list[AnalyticsEvent] = []

    def emit(self, event: AnalyticsEvent) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [e.name for e in self.events]
