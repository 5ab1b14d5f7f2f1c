"""
Symptom Assessment Engine.

Drives the fixed five-question protocol:

  start_assessment ─→ Q1 ─→ Q2 ─→ Q3 ─→ Q4 ─→ Q5 ─→ AssessmentResult
                      (each answer: acknowledgment + next question)

The questions do not depend on the symptom. After the fifth answer the
shared TriageRuleTable computes the result. States are immutable: every
advance returns a new AssessmentState.
"""

import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from triage.errors import AssessmentProtocolViolation
from triage.medical_knowledge import TriageRuleTable
from triage.models import AssessmentResult, AssessmentState

PROTOCOL_LENGTH = 5

# ── Protocol Questions ─────────────────────────────────────────────────────

PROTOCOL_QUESTIONS: dict[str, list[str]] = {
    "en": [
        "What is your current body temperature?",
        "Since how many days have you been experiencing these symptoms?",
        "Are you having any other symptoms like chills, body aches, cough or vomiting?",
        "Have you taken any medicine for it?",
        "Do you have any existing health conditions like diabetes or heart problems?",
    ],
    "hi": [
        "आपके शरीर का वर्तमान तापमान क्या है?",
        "आप कितने दिनों से ये लक्षण महसूस कर रहे हैं?",
        "क्या आपको ठंड लगना, शरीर में दर्द, खांसी या उल्टी जैसे अन्य लक्षण हैं?",
        "क्या आपने इसके लिए कोई दवा ली है?",
        "क्या आपको मधुमेह या हृदय रोग जैसी कोई पुरानी बीमारी है?",
    ],
}

ACKNOWLEDGMENTS: dict[str, list[str]] = {
    "en": [
        "I understand, thank you for sharing that.",
        "Got it, that's helpful information.",
        "Thanks for letting me know.",
        "I see, thank you.",
        "That's very helpful, thank you.",
    ],
    "hi": [
        "मैं समझ गया, बताने के लिए धन्यवाद।",
        "ठीक है, यह जानकारी उपयोगी है।",
        "बताने के लिए धन्यवाद।",
    ],
}

PhraseSelector = Callable[[Sequence[str]], str]


@dataclass(frozen=True)
class AssessmentStep:
    """The protocol is still in progress: acknowledge and ask the next question."""

    state: AssessmentState
    acknowledgment: str
    question: str

    @property
    def text(self) -> str:
        return f"{self.acknowledgment} {self.question}"


class AssessmentEngine:
    def __init__(self, rules: TriageRuleTable, selector: PhraseSelector = random.choice):
        self.rules = rules
        self.selector = selector

    def start_assessment(self, symptom: str) -> AssessmentState:
        return AssessmentState(symptom=symptom)

    def question_for(self, state: AssessmentState, language: str = "en") -> str:
        self._check(state)
        return _bank(PROTOCOL_QUESTIONS, language)[state.step_index]

    def advance_assessment(
        self, state: AssessmentState, answer: str, language: str = "en"
    ) -> AssessmentStep | AssessmentResult:
        """
        Record an answer and move one step forward.

        Raises:
            AssessmentProtocolViolation: state is outside the protocol.
        """
        self._check(state)
        advanced = AssessmentState(
            symptom=state.symptom,
            step_index=state.step_index + 1,
            responses=state.responses + (answer,),
        )
        if advanced.step_index == PROTOCOL_LENGTH:
            return self.rules.evaluate(advanced.symptom, advanced.responses, language)

        return AssessmentStep(
            state=advanced,
            acknowledgment=self.selector(_bank(ACKNOWLEDGMENTS, language)),
            question=_bank(PROTOCOL_QUESTIONS, language)[advanced.step_index],
        )

    @staticmethod
    def _check(state: AssessmentState) -> None:
        if not 0 <= state.step_index < PROTOCOL_LENGTH:
            raise AssessmentProtocolViolation(
                f"step_index {state.step_index} outside [0, {PROTOCOL_LENGTH})"
            )
        if len(state.responses) != state.step_index:
            raise AssessmentProtocolViolation(
                f"{len(state.responses)} responses recorded at step {state.step_index}"
            )


def _bank(banks: dict[str, list[str]], language: str) -> list[str]:
    return banks.get(language, banks["en"])
