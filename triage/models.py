"""
Conversation data model.

Everything that crosses a component boundary is one of these types:
  - Session / ConversationContext / Turn  (owned by the SessionStore)
  - AssessmentState / AssessmentResult    (owned by the AssessmentEngine)
  - IntentClassification / EscalationDecision (value types, never stored)
  - InboundMessage / OutboundMessage      (channel adapter boundary)
  - AnalyticsEvent / Worker               (external collaborators)

Stored types are pydantic models: ``model_dump(by_alias=True)`` gives the
document a store keeps, ``model_validate`` reads it back.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

import config
from triage.errors import ValidationError


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def _ensure_utc(value: datetime) -> datetime:
    # Mongo hands back naive datetimes that are already UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


UtcDateTime = Annotated[datetime, AfterValidator(_ensure_utc)]


LANGUAGE_ALIASES: dict[str, str] = {
    "english": "en",
    "hindi": "hi",
    "telugu": "te",
    "tamil": "ta",
    "bengali": "bn",
    "marathi": "mr",
}

# Script ranges that identify a language on their own
SCRIPT_LANGUAGES: dict[str, re.Pattern] = {
    "hi": re.compile(r"[\u0900-\u097F]"),
    "bn": re.compile(r"[\u0980-\u09FF]"),
    "ta": re.compile(r"[\u0B80-\u0BFF]"),
    "te": re.compile(r"[\u0C00-\u0C7F]"),
}


def normalize_language(tag: str | None) -> str:
    """Reduce 'en-US', 'English', 'hi_IN' and friends to a bare language code."""
    if not tag or not tag.strip():
        return config.DEFAULT_LANGUAGE
    tag = tag.strip().lower().replace("_", "-")
    tag = LANGUAGE_ALIASES.get(tag, tag)
    return tag.split("-")[0]


def detect_language(text: str | None) -> str | None:
    """
    Guess the language from the script the text is written in.

    Returns None for Latin script (or anything unrecognised) so the caller
    can fall back to whatever language the conversation already uses.
    """
    if not text:
        return None
    for language, pattern in SCRIPT_LANGUAGES.items():
        if pattern.search(text):
            return language
    return None


# ── Enums ──────────────────────────────────────────────────────────────────


class Platform(str, Enum):
    """Channels a conversation can arrive on."""

    WEB = "web"
    WHATSAPP = "whatsapp"
    SMS = "sms"
    IVR = "ivr"


class SessionStatus(str, Enum):
    """Lifecycle status of a session. See triage.states for transitions."""

    ACTIVE = "active"
    WAITING = "waiting"
    ESCALATED = "escalated"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.TIMED_OUT)


class UserState(str, Enum):
    """What the user is currently doing in the conversation."""

    GREETING = "greeting"
    SYMPTOM_CHECK = "symptom_check"
    VACCINATION_INFO = "vaccination_info"
    HEALTH_EDUCATION = "health_education"
    EMERGENCY = "emergency"
    ESCALATED = "escalated"


class Severity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class EscalationReason(str, Enum):
    EXPLICIT_EMERGENCY_KEYWORD = "explicit_emergency_keyword"
    CRITICAL_SEVERITY_ASSESSMENT = "critical_severity_assessment"
    REPEATED_UNRESOLVED_INTENT = "repeated_unresolved_intent"
    USER_REQUESTED_HUMAN = "user_requested_human"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# ── Classification & Escalation Values ─────────────────────────────────────


@dataclass(frozen=True)
class Entity:
    """An extracted entity and its character span in the original text."""

    name: str
    value: str
    start: int
    end: int


@dataclass(frozen=True)
class IntentClassification:
    intent: str
    confidence: float
    entities: tuple[Entity, ...] = ()

    def entity_values(self) -> dict[str, str]:
        """Entities as a name → value mapping (first occurrence wins)."""
        values: dict[str, str] = {}
        for entity in self.entities:
            values.setdefault(entity.name, entity.value)
        return values


@dataclass(frozen=True)
class EscalationDecision:
    escalate: bool
    reason: EscalationReason | None = None
    priority: Priority | None = None

    @classmethod
    def no_escalation(cls) -> "EscalationDecision":
        return cls(escalate=False)


# ── Assessment ─────────────────────────────────────────────────────────────


class AssessmentState(BaseModel):
    """Progress through the fixed questionnaire. Replaced, never mutated."""

    model_config = ConfigDict(frozen=True)

    symptom: str
    step_index: int = 0
    responses: tuple[str, ...] = ()


class AssessmentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    symptom: str
    responses: tuple[str, ...]
    severity: Severity
    condition: str
    recommended_action: str
    recommendation_text: str
    summary_text: str


# ── Session ────────────────────────────────────────────────────────────────


class Turn(BaseModel):
    role: str  # "user" | "assistant"
    text: str
    timestamp: UtcDateTime = Field(default_factory=utc_now)


class QueryRecord(BaseModel):
    intent: str
    confidence: float
    timestamp: UtcDateTime = Field(default_factory=utc_now)


class ConversationContext(BaseModel):
    """Structured memory of the conversation. Mutated only by the orchestrator."""

    current_intent: str | None = None
    user_state: UserState = UserState.GREETING
    assessment: AssessmentState | None = None
    previous_queries: list[QueryRecord] = Field(default_factory=list)

    def remember_query(self, record: QueryRecord, limit: int = config.MAX_PREVIOUS_QUERIES) -> None:
        """Push a classified query onto the most-recent-first list."""
        self.previous_queries.insert(0, record)
        del self.previous_queries[limit:]


class EscalationRecord(BaseModel):
    reason: EscalationReason
    priority: Priority
    escalated_at: UtcDateTime = Field(default_factory=utc_now)
    worker_id: str | None = None
    worker_name: str | None = None


class Session(BaseModel):
    """One conversation for a (user_id, platform) pair. Stored under ``_id``."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str
    platform: Platform
    language: str = config.DEFAULT_LANGUAGE
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    status: SessionStatus = SessionStatus.ACTIVE
    context: ConversationContext = Field(default_factory=ConversationContext)
    history: list[Turn] = Field(default_factory=list)
    started_at: UtcDateTime = Field(default_factory=utc_now)
    last_activity_at: UtcDateTime = Field(default_factory=utc_now)
    ended_at: UtcDateTime | None = None
    location: str | None = None
    escalation: EscalationRecord | None = None
    status_history: list[SessionStatus] = Field(
        default_factory=lambda: [SessionStatus.ACTIVE]
    )

    def add_turn(self, role: str, text: str, at: datetime | None = None) -> Turn:
        turn = Turn(role=role, text=text, timestamp=at or utc_now())
        self.history.append(turn)
        return turn


# ── Health Workers ─────────────────────────────────────────────────────────


class Worker(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    name: str
    phone_number: str = ""
    specialization: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=lambda: ["en"])
    location: str | None = None
    current_load: int = 0
    max_concurrent_chats: int = 5
    is_online: bool = True

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        # Worker documents may carry an ObjectId
        return str(value)

    @property
    def has_capacity(self) -> bool:
        return self.is_online and self.current_load < self.max_concurrent_chats


# ── Channel Boundary ───────────────────────────────────────────────────────


class InboundMessage(BaseModel):
    """
    A channel-agnostic inbound message. Build with InboundMessage.build().

    ``language`` is None when neither the channel nor the script of the text
    says which language the user writes in.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    platform: Platform
    text: str
    language: str | None = Field(default=None, validate_default=True)
    timestamp: UtcDateTime = Field(default_factory=utc_now)
    location: str | None = None
    message_id: str | None = None

    @field_validator("user_id", mode="before")
    @classmethod
    def _require_user_id(cls, value: Any) -> str:
        user_id = str(value or "").strip()
        if not user_id:
            raise ValueError("Inbound message has no user id")
        return user_id

    @field_validator("text", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> str:
        text = (value or "").strip()
        if not text:
            raise ValueError("Inbound message text is empty")
        # Guard against extremely long messages
        return text[: config.MAX_MESSAGE_CHARS]

    @field_validator("language")
    @classmethod
    def _resolve_language(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value and value.strip():
            return normalize_language(value)
        return detect_language(info.data.get("text"))

    @classmethod
    def build(
        cls,
        user_id: str,
        platform: str | Platform,
        text: str | None,
        language: str | None = None,
        timestamp: datetime | None = None,
        location: str | None = None,
        message_id: str | None = None,
    ) -> "InboundMessage":
        """
        Validate raw channel fields and produce an InboundMessage.

        Raises:
            ValidationError: empty text, missing user id, unknown platform.
        """
        try:
            return cls(
                user_id=user_id,
                platform=platform,
                text=text,
                language=language,
                timestamp=timestamp or utc_now(),
                location=location,
                message_id=message_id,
            )
        except PydanticValidationError as exc:
            problem = exc.errors()[0]
            field_name = ".".join(str(part) for part in problem["loc"])
            raise ValidationError(f"{field_name}: {problem['msg']}") from exc


class Button(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str


class OutboundMessage(BaseModel):
    session_id: str
    user_id: str
    platform: Platform
    language: str
    text: str
    buttons: list[Button] = Field(default_factory=list)
    escalated: bool = False
    intent: str | None = None
    durable: bool = True
    # Parts a multi-part channel has already handed to its provider
    delivered_parts: int = 0


class AnalyticsEvent(BaseModel):
    name: str
    session_id: str
    user_id: str
    platform: Platform
    language: str
    timestamp: UtcDateTime = Field(default_factory=utc_now)
    properties: dict[str, Any] = Field(default_factory=dict)
