"""
Escalation Policy.

Decides whether a turn must be handed to a human health worker. Triggers
are checked in order and the first match wins:

  1. emergency phrase in the latest message   → URGENT / explicit_emergency_keyword
  2. assessment came out severe                → HIGH   / critical_severity_assessment
  3. same low-confidence intent 3 times running → MEDIUM / repeated_unresolved_intent
  4. user asked for a person                   → MEDIUM / user_requested_human

The policy is pure: it reads the context and returns a decision.
"""

import config
from triage.medical_knowledge import check_emergency_keywords, check_human_request
from triage.models import (
    AssessmentResult,
    ConversationContext,
    EscalationDecision,
    EscalationReason,
    IntentClassification,
    Priority,
    Severity,
)


class EscalationPolicy:
    def __init__(
        self,
        window: int = config.REPEATED_INTENT_WINDOW,
        confidence_floor: float = config.CLASSIFIER_CONFIDENCE_FLOOR,
    ):
        self.window = window
        self.confidence_floor = confidence_floor

    def decide(
        self,
        context: ConversationContext,
        classification: IntentClassification | None,
        latest_text: str,
        language: str = "en",
        result: AssessmentResult | None = None,
    ) -> EscalationDecision:
        if check_emergency_keywords(latest_text, language):
            return EscalationDecision(True, EscalationReason.EXPLICIT_EMERGENCY_KEYWORD, Priority.URGENT)

        if result is not None and result.severity == Severity.SEVERE:
            return EscalationDecision(True, EscalationReason.CRITICAL_SEVERITY_ASSESSMENT, Priority.HIGH)

        # Only a classified turn can add to the run of unresolved intents
        if classification is not None and self._repeated_unresolved(context):
            return EscalationDecision(True, EscalationReason.REPEATED_UNRESOLVED_INTENT, Priority.MEDIUM)

        if check_human_request(latest_text, language):
            return EscalationDecision(True, EscalationReason.USER_REQUESTED_HUMAN, Priority.MEDIUM)

        return EscalationDecision.no_escalation()

    def _repeated_unresolved(self, context: ConversationContext) -> bool:
        recent = context.previous_queries[: self.window]
        if len(recent) < self.window:
            return False
        intents = {q.intent for q in recent}
        return len(intents) == 1 and all(q.confidence <= self.confidence_floor for q in recent)
