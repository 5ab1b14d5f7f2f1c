"""
Conversation Manager — Core Orchestrator.

Runs one turn per inbound message, under the per-user session lock:

  InboundMessage
      │
      ▼
  ┌──────────────┐
  │ Session      │──── load or create, mark active, append user turn
  │ Store        │
  └──────┬───────┘
         │
         ▼
  ┌──────────────┐  assessment in progress   ┌──────────────┐
  │ Assessment?  │─────────────────────────▶ │ Assessment   │── next question / result
  └──────┬───────┘                           │ Engine       │
         │ no                                └──────────────┘
         ▼
  ┌──────────────┐  symptom mentioned
  │ Intent       │──────────────────────▶ start assessment (first question)
  │ Classifier   │──────────────────────▶ reply generator + quick replies
  └──────┬───────┘
         │
         ▼
  ┌──────────────┐
  │ Escalation   │──── MATCH ────▶ assign health worker or hotline fallback
  │ Policy       │
  └──────┬───────┘
         │
         ▼
  save session, emit analytics, return OutboundMessage

Every path returns a reply. The only errors that escape are programming
errors (invalid state transitions, protocol violations) and validation
errors for malformed input.
"""

import asyncio
import logging

import config
from triage.assessment import AssessmentEngine, AssessmentStep
from triage.delivery import AnalyticsEmitter
from triage.escalation import EscalationPolicy
from triage.errors import DispatchUnavailable, PersistenceError
from triage.intent_classifier import INFORMATIONAL_INTENTS, IntentClassifier
from triage.interfaces import HealthWorkerDispatch, MedicalRecordSink, ReplyGenerator
from triage.medical_knowledge import TriageRuleTable
from triage.models import (
    AnalyticsEvent,
    AssessmentResult,
    EscalationDecision,
    EscalationRecord,
    InboundMessage,
    IntentClassification,
    OutboundMessage,
    Platform,
    Priority,
    QueryRecord,
    Session,
    SessionStatus,
    UserState,
    utc_now,
)
from triage.replies import (
    APOLOGY,
    ESCALATION_ASSIGNED,
    ESCALATION_FALLBACK,
    URGENT_NOTICE,
    TemplateReplyGenerator,
    localized,
    quick_replies_for,
)
from triage.session_store import SessionStore
from triage.states import transition

logger = logging.getLogger(__name__)

USER_STATE_BY_INTENT: dict[str, UserState] = {
    "greeting": UserState.GREETING,
    "symptom_check": UserState.SYMPTOM_CHECK,
    "emergency": UserState.EMERGENCY,
    "vaccination_info": UserState.VACCINATION_INFO,
    "medication_query": UserState.HEALTH_EDUCATION,
    "prevention": UserState.HEALTH_EDUCATION,
    "health_education": UserState.HEALTH_EDUCATION,
}

# Intents that close the session once answered
CLOSING_INTENTS: frozenset[str] = frozenset({"farewell"})


class ConversationManager:
    """Orchestrates a triage conversation across channels."""

    def __init__(
        self,
        store: SessionStore,
        records: MedicalRecordSink,
        dispatch: HealthWorkerDispatch,
        analytics: AnalyticsEmitter,
        replies: ReplyGenerator | None = None,
        classifier: IntentClassifier | None = None,
        rules: TriageRuleTable | None = None,
        assessment: AssessmentEngine | None = None,
        escalation: EscalationPolicy | None = None,
        turn_timeout: float = config.TURN_TIMEOUT_SECONDS,
        reply_timeout: float = config.LLM_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.records = records
        self.dispatch = dispatch
        self.analytics = analytics
        self.replies = replies or TemplateReplyGenerator()
        self.classifier = classifier or IntentClassifier()
        self.rules = rules or TriageRuleTable()
        self.assessment = assessment or AssessmentEngine(self.rules)
        self.escalation = escalation or EscalationPolicy()
        self.turn_timeout = turn_timeout
        self.reply_timeout = reply_timeout

    # ── Entry Points ───────────────────────────────────────────────────

    async def handle_message(
        self,
        user_id: str,
        platform: str | Platform,
        text: str,
        language: str | None = None,
        location: str | None = None,
    ) -> OutboundMessage:
        """
        Process one inbound message and return the reply.

        Raises:
            ValidationError: empty text, missing user id or unknown platform.
        """
        inbound = InboundMessage.build(
            user_id=user_id,
            platform=platform,
            text=text,
            language=language,
            location=location,
        )
        return await self.handle(inbound)

    async def handle(self, inbound: InboundMessage) -> OutboundMessage:
        """
        Process an already-validated inbound message.

        Time spent queued behind another turn for the same user does not
        count against the turn budget, only the work done under the lock.
        """
        async with self.store.locked(inbound.user_id, inbound.platform):
            try:
                return await asyncio.wait_for(
                    self._turn(inbound),
                    timeout=self.turn_timeout + self.reply_timeout,
                )
            except asyncio.TimeoutError:
                logger.error(
                    "Turn for %s/%s exceeded its time budget; changes discarded",
                    inbound.platform.value, inbound.user_id,
                )
                return self._apology(inbound)

    async def end_session(self, user_id: str, platform: str | Platform) -> bool:
        """Explicitly complete the user's open session. Returns False if none was open."""
        platform = Platform(platform)
        async with self.store.locked(user_id, platform):
            session = await self.store.load(user_id, platform)
            if session is None or session.status.is_terminal:
                return False
            now = utc_now()
            transition(session, SessionStatus.COMPLETED, now)
            await self.store.save(session)
            await self._release_worker(session)
        self._emit(session, "session_completed", now, ended_by="user")
        return True

    # ── Turn Processing ────────────────────────────────────────────────

    async def _turn(self, inbound: InboundMessage) -> OutboundMessage:
        try:
            session, created = await self.store.load_or_create(inbound)
        except PersistenceError as e:
            logger.error("Could not load session for %s/%s: %s", inbound.platform.value, inbound.user_id, e)
            return self._apology(inbound)
        return await self._run_turn(session, created, inbound)

    async def _run_turn(self, session: Session, created: bool, inbound: InboundMessage) -> OutboundMessage:
        now = inbound.timestamp
        ctx = session.context
        # Channels that cannot tell keep the language the session already uses
        language = inbound.language or session.language
        events: list[tuple[str, dict]] = []

        # ── Step 1: Mark active & record the user turn ─────────────────
        if session.status == SessionStatus.WAITING:
            transition(session, SessionStatus.ACTIVE, now)
        session.language = language
        if inbound.location:
            session.location = inbound.location
        session.add_turn("user", inbound.text, now)
        session.last_activity_at = now

        classification: IntentClassification | None = None
        result: AssessmentResult | None = None
        buttons = []

        # ── Step 2: Continue an assessment, or classify ────────────────
        if ctx.assessment is not None:
            outcome = self.assessment.advance_assessment(ctx.assessment, inbound.text, language)
            if isinstance(outcome, AssessmentStep):
                ctx.assessment = outcome.state
                reply_text = outcome.text
            else:
                result = outcome
                ctx.assessment = None
                reply_text = result.summary_text
                events.append(("assessment_completed", {
                    "symptom": result.symptom,
                    "severity": result.severity.value,
                    "recommended_action": result.recommended_action,
                }))
        else:
            classification = self.classifier.classify(inbound.text, language)
            ctx.current_intent = classification.intent
            ctx.remember_query(QueryRecord(
                intent=classification.intent, confidence=classification.confidence, timestamp=now
            ))

            symptom = self._symptom_trigger(classification, inbound.text)
            if symptom is not None:
                ctx.assessment = self.assessment.start_assessment(symptom)
                ctx.user_state = UserState.SYMPTOM_CHECK
                reply_text = self.assessment.question_for(ctx.assessment, language)
                events.append(("assessment_started", {"symptom": symptom}))
            else:
                ctx.user_state = USER_STATE_BY_INTENT.get(classification.intent, ctx.user_state)
                reply_text = await self._generate_reply(classification, language)
                buttons = quick_replies_for(classification.intent)

        # ── Step 3: Escalation check ───────────────────────────────────
        decision = self.escalation.decide(ctx, classification, inbound.text, language, result)
        if decision.escalate:
            escalation_text = await self._escalate(session, decision, now)
            reply_text = f"{reply_text}\n\n{escalation_text}" if result else escalation_text
            buttons = []
            events.append(("session_escalated", {
                "escalation_reason": decision.reason.value,
                "priority": decision.priority.value,
                "worker_id": session.escalation.worker_id,
            }))

        # ── Step 4: Record the assessment outcome ──────────────────────
        if result is not None:
            await self._write_record(session, result)

        # ── Step 5: Close or wait for the next message ─────────────────
        intent = classification.intent if classification else ctx.current_intent
        if decision.escalate or result is not None or (classification and intent in CLOSING_INTENTS):
            transition(session, SessionStatus.COMPLETED, now)
            await self._release_worker(session)
            events.append(("session_completed", {}))
        else:
            transition(session, SessionStatus.WAITING, now)

        session.add_turn("assistant", reply_text, utc_now())

        # ── Step 6: Persist ────────────────────────────────────────────
        durable = True
        try:
            await self.store.save(session)
        except PersistenceError as e:
            durable = False
            logger.error("Session %s not saved: %s", session.id, e)

        # ── Step 7: Analytics ──────────────────────────────────────────
        if created:
            self._emit(session, "session_started", now)
        self._emit(
            session,
            "message_processed",
            now,
            intent=intent,
            confidence=classification.confidence if classification else None,
            status=session.status.value,
            escalated=decision.escalate,
            escalation_reason=decision.reason.value if decision.reason else None,
            durable=durable,
        )
        for name, properties in events:
            self._emit(session, name, now, **properties)

        logger.info(
            "Session %s turn done: intent=%s status=%s escalated=%s",
            session.id, intent, session.status.value, decision.escalate,
        )
        return OutboundMessage(
            session_id=session.id,
            user_id=session.user_id,
            platform=session.platform,
            language=language,
            text=reply_text,
            buttons=buttons,
            escalated=decision.escalate,
            intent=intent,
            durable=durable,
        )

    def _symptom_trigger(self, classification: IntentClassification, text: str) -> str | None:
        """Symptom to assess, or None when this turn should not start an assessment."""
        if classification.intent == "symptom_check":
            return self.rules.detect_symptom(text) or "general"
        if classification.intent in INFORMATIONAL_INTENTS:
            return None
        return self.rules.detect_symptom(text)

    async def _generate_reply(self, classification: IntentClassification, language: str) -> str:
        try:
            text = await asyncio.wait_for(
                self.replies.generate(
                    classification.intent, classification.entity_values(), language
                ),
                timeout=self.reply_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Reply generation timed out for intent %s", classification.intent)
            return localized(APOLOGY, language)
        except Exception:
            logger.exception("Reply generation failed for intent %s", classification.intent)
            return localized(APOLOGY, language)
        return text if text and text.strip() else localized(APOLOGY, language)

    async def _escalate(self, session: Session, decision: EscalationDecision, now) -> str:
        """Hand the session to a health worker. Falls back to the hotline on any dispatch failure."""
        transition(session, SessionStatus.ESCALATED, now)
        session.context.assessment = None
        session.context.user_state = UserState.ESCALATED

        worker = None
        try:
            worker = await asyncio.to_thread(
                self.dispatch.find_available, session.location, decision.priority, session.language
            )
            if worker is None:
                raise DispatchUnavailable("No health worker available")
            await asyncio.to_thread(
                self.dispatch.notify, worker.id, session.id, decision.reason, decision.priority
            )
        except Exception as e:
            logger.warning("[Escalation] Session %s falling back to hotline: %s", session.id, e)
            if worker is not None:
                # Claimed but never told about the session
                await self._release(worker.id)
            worker = None

        session.escalation = EscalationRecord(
            reason=decision.reason,
            priority=decision.priority,
            escalated_at=now,
            worker_id=worker.id if worker else None,
            worker_name=worker.name if worker else None,
        )
        logger.info(
            "[Escalation] Session %s escalated (%s, %s) worker=%s",
            session.id, decision.reason.value, decision.priority.value,
            worker.id if worker else None,
        )

        if worker is None:
            return localized(ESCALATION_FALLBACK, session.language)
        text = localized(ESCALATION_ASSIGNED, session.language, name=worker.name)
        if decision.priority == Priority.URGENT:
            text = f"{text} {localized(URGENT_NOTICE, session.language)}"
        return text

    async def _write_record(self, session: Session, result: AssessmentResult) -> None:
        try:
            await asyncio.to_thread(self.records.write_assessment_result, session.user_id, result)
        except Exception:
            logger.exception("Assessment result for session %s not recorded", session.id)

    async def _release_worker(self, session: Session) -> None:
        """Free the health worker slot held by a session that has just closed."""
        if session.escalation is not None and session.escalation.worker_id:
            await self._release(session.escalation.worker_id)

    async def _release(self, worker_id: str) -> None:
        try:
            await asyncio.to_thread(self.dispatch.release, worker_id)
        except Exception:
            logger.exception("[Escalation] Could not release worker %s", worker_id)

    # ── Helpers ────────────────────────────────────────────────────────

    def _emit(self, session: Session, name: str, at, **properties) -> None:
        self.analytics.emit(AnalyticsEvent(
            name=name,
            session_id=session.id,
            user_id=session.user_id,
            platform=session.platform,
            language=session.language,
            timestamp=at,
            properties=properties,
        ))

    @staticmethod
    def _apology(inbound: InboundMessage) -> OutboundMessage:
        language = inbound.language or config.DEFAULT_LANGUAGE
        return OutboundMessage(
            session_id="",
            user_id=inbound.user_id,
            platform=inbound.platform,
            language=language,
            text=localized(APOLOGY, language),
            durable=False,
        )
