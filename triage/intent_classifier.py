"""
Intent Classifier.

Rule-based classification over ordered pattern groups:

  confidence(intent) = matched groups / total groups

The best-scoring intent wins; ties go to the intent declared first. When
nothing beats the confidence floor the message is classified as
``general`` at the floor. Entities (age, gender, duration) are extracted
in a separate pass and attached to every result.

The classifier holds no per-request state and is safe to share.
"""

import re

import config
from triage.errors import ValidationError
from triage.models import Entity, IntentClassification, normalize_language

GENERAL_INTENT = "general"

# ── Pattern Sets ───────────────────────────────────────────────────────────
# Declaration order matters: it breaks ties. symptom_check sits below the
# informational intents so "I have a question about X" answers the question.

_ENGLISH_PATTERNS: dict[str, list[str]] = {
    "greeting": [
        r"\b(hello|hi|hey|namaste|greetings|salaam|vanakkam)\b",
        r"\bgood (morning|afternoon|evening)\b",
    ],
    "emergency": [
        r"\b(emergency|urgent|critical)\b",
        r"\bambulance\b",
        r"\bhospital\b",
    ],
    "medication_query": [
        r"\b(medicine|medication|drugs?)\b",
        r"\b(dosage|dose)\b",
        r"\bside effects?\b",
    ],
    "vaccination_info": [
        r"\b(vaccines?|vaccination)\b",
        r"\bimmuni[sz]ation\b",
        r"\bschedule\b",
    ],
    "prevention": [
        r"\b(prevent|prevention)\b",
        r"\bavoid\b",
        r"\bprecautions?\b",
    ],
    "health_education": [
        r"\bwhat is\b",
        r"\bhow to\b",
        r"\binformation\b",
        r"\blearn\b",
    ],
    "symptom_check": [
        r"\b(i have|i am experiencing|i feel)\b",
        r"\bsymptoms?\b",
        r"\b(pain|ache|hurts?)\b",
    ],
    "farewell": [
        r"\b(bye|goodbye|thank you|thanks|see you)\b",
    ],
}

_HINDI_PATTERNS: dict[str, list[str]] = {
    "greeting": [
        r"(नमस्ते|नमस्कार|हेलो|hello|hi|namaste)",
        r"(सुप्रभात|शुभ संध्या)",
    ],
    "emergency": [
        r"(आपातकाल|तुरंत|emergency)",
        r"एम्बुलेंस",
        r"अस्पताल",
    ],
    "medication_query": [
        r"(दवा|दवाई)",
        r"खुराक",
        r"साइड इफेक्ट",
    ],
    "vaccination_info": [
        r"(टीका|टीकाकरण|vaccine)",
        r"प्रतिरक्षण",
        r"कार्यक्रम",
    ],
    "prevention": [
        r"(बचाव|रोकथाम)",
        r"बचना",
        r"सावधानी",
    ],
    "health_education": [
        r"क्या है",
        r"कैसे",
        r"जानकारी",
        r"सीखना",
    ],
    "symptom_check": [
        r"(मुझे|मैं महसूस कर रहा हूं|मैं महसूस कर रही हूं)",
        r"लक्षण",
        r"(दर्द|pain)",
    ],
    "farewell": [
        r"(धन्यवाद|शुक्रिया|अलविदा|फिर मिलेंगे)",
    ],
}

INTENT_PATTERNS: dict[str, dict[str, list[str]]] = {
    "en": _ENGLISH_PATTERNS,
    "hi": _HINDI_PATTERNS,
}

# Intents that answer a question rather than describe the user's own health
INFORMATIONAL_INTENTS: frozenset[str] = frozenset(
    {"vaccination_info", "prevention", "health_education", "medication_query"}
)

# ── Entity Patterns ────────────────────────────────────────────────────────

ENTITY_PATTERNS: dict[str, str] = {
    "age": r"(\d+)\s*(years?|year old|साल)",
    "gender": r"\b(male|female|man|woman|boy|girl)\b|(पुरुष|महिला|लड़का|लड़की)",
    "duration": r"(\d+)\s*(days?|weeks?|months?|दिन|सप्ताह|महीने)",
}


class IntentClassifier:
    """Pure keyword/pattern intent classifier with entity extraction."""

    def __init__(
        self,
        patterns: dict[str, dict[str, list[str]]] | None = None,
        confidence_floor: float = config.CLASSIFIER_CONFIDENCE_FLOOR,
        language_penalty: float = config.LANGUAGE_FALLBACK_PENALTY,
    ):
        self.confidence_floor = confidence_floor
        self.language_penalty = language_penalty
        self._patterns = {
            lang: {
                intent: [re.compile(p, re.IGNORECASE) for p in groups]
                for intent, groups in intents.items()
            }
            for lang, intents in (patterns or INTENT_PATTERNS).items()
        }
        self._entities = {
            name: re.compile(p, re.IGNORECASE) for name, p in ENTITY_PATTERNS.items()
        }

    @property
    def intents(self) -> list[str]:
        return list(self._patterns["en"])

    def classify(self, text: str, language: str = "en") -> IntentClassification:
        """
        Classify a message.

        Raises:
            ValidationError: text is empty or whitespace.
        """
        if not text or not text.strip():
            raise ValidationError("Cannot classify empty text")

        lang = normalize_language(language)
        patterns = self._patterns.get(lang)
        penalty = 0.0
        if patterns is None:
            patterns = self._patterns["en"]
            penalty = self.language_penalty

        best_intent, best_confidence = GENERAL_INTENT, self.confidence_floor
        for intent, groups in patterns.items():
            matched = sum(1 for group in groups if group.search(text))
            confidence = max(0.0, matched / len(groups) - penalty)
            if confidence > best_confidence:
                best_intent, best_confidence = intent, confidence

        return IntentClassification(
            intent=best_intent,
            confidence=round(best_confidence, 4),
            entities=self.extract_entities(text),
        )

    def extract_entities(self, text: str) -> tuple[Entity, ...]:
        entities = []
        for name, pattern in self._entities.items():
            for match in pattern.finditer(text):
                if name == "gender":
                    value = match.group(0).lower()
                else:
                    value = f"{match.group(1)} {match.group(2).lower()}"
                entities.append(Entity(name=name, value=value, start=match.start(), end=match.end()))
        return tuple(entities)
