"""
Medical Knowledge Base.

Contains:
  1. Emergency keyword lexicon (rule-based safety net, per language)
  2. Human-request lexicon
  3. Symptom rules: synonyms, conditions and recommendations by severity
  4. The TriageRuleTable that turns assessment answers into a result

The rule table is deterministic and is the single source of severity.
Any generated (LLM) text is for display only and never overrides it.
"""

import re
from dataclasses import dataclass

from triage.models import AssessmentResult, Severity

# ── Emergency Keywords ─────────────────────────────────────────────────────
# These trigger IMMEDIATE escalation regardless of intent or assessment.
# Organised by category for maintainability.

EMERGENCY_KEYWORDS: dict[str, list[str]] = {
    "general": [
        "emergency",
        "ambulance",
    ],
    "cardiac": [
        "heart attack",
        "cardiac arrest",
        "chest pain",
        "chest tightness",
        "crushing chest pain",
    ],
    "respiratory": [
        "can't breathe",
        "cannot breathe",
        "not breathing",
        "stopped breathing",
        "difficulty breathing",
        "choking",
        "suffocating",
    ],
    "neurological": [
        "stroke",
        "face drooping",
        "sudden numbness",
        "seizure",
        "convulsions",
        "unconscious",
        "unresponsive",
        "passed out",
    ],
    "bleeding": [
        "severe bleeding",
        "bleeding heavily",
        "won't stop bleeding",
        "coughing blood",
        "vomiting blood",
    ],
    "toxicology": [
        "poisoning",
        "overdose",
        "swallowed poison",
    ],
    "allergic": [
        "anaphylaxis",
        "severe allergic reaction",
        "throat swelling",
    ],
    "mental_health": [
        "suicide",
        "suicidal",
        "want to kill myself",
        "self harm",
    ],
}

# Flatten for quick lookup
ALL_EMERGENCY_KEYWORDS: list[str] = [
    kw for category in EMERGENCY_KEYWORDS.values() for kw in category
]

EMERGENCY_KEYWORDS_BY_LANGUAGE: dict[str, list[str]] = {
    "en": ALL_EMERGENCY_KEYWORDS,
    "hi": [
        "आपातकाल",
        "एम्बुलेंस",
        "सांस नहीं ले पा",
        "सीने में दर्द",
        "छाती में दर्द",
        "दिल का दौरा",
        "बेहोश",
        "दौरा पड़",
        "बहुत खून",
        "ज़हर",
        "जहर",
    ],
}


# ── Human Request Keywords ─────────────────────────────────────────────────

HUMAN_REQUEST_KEYWORDS: dict[str, list[str]] = {
    "en": [
        "human",
        "real person",
        "talk to doctor",
        "talk to a doctor",
        "speak to doctor",
        "speak to a doctor",
        "speak to someone",
        "talk to someone",
        "health worker",
    ],
    "hi": [
        "डॉक्टर से बात",
        "इंसान से बात",
        "किसी से बात",
    ],
}


# ── Symptom Vocabulary ─────────────────────────────────────────────────────
# Broad vocabulary used to notice that a message mentions *some* symptom
# even when no specific rule covers it.

SYMPTOM_VOCABULARY: list[str] = [
    "fever", "headache", "cough", "pain", "ache", "hurt", "sick", "nausea",
    "vomiting", "diarrhea", "dizzy", "tired", "fatigue", "sore", "swollen",
    "rash", "itchy", "burning", "stiff", "weak", "breathe", "chest", "stomach",
    "joint", "muscle", "throat", "temperature", "chills", "cold", "flu",
    "migraine", "asthma", "allergies", "infection", "wound", "cut", "bruise",
    "sprain", "strain", "constipation", "heartburn", "acidity", "bloating",
    "बुखार", "सिरदर्द", "खांसी", "दर्द", "पेट", "गले", "सांस",
]

# Intensity words scanned over assessment answers
SEVERE_MARKERS: list[str] = ["severe", "intense", "worst", "unbearable", "गंभीर", "बहुत तेज"]
MODERATE_MARKERS: list[str] = ["moderate", "bad", "मध्यम"]


# ── Symptom Rules ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Recommendation:
    action: str  # "self-care" | "visit clinic" | "emergency"
    text: str


@dataclass(frozen=True)
class SymptomRule:
    name: str
    synonyms: tuple[str, ...]
    conditions: dict[Severity, str]
    recommendations: dict[Severity, Recommendation]
    always_severe: bool = False


def _rule(name, synonyms, conditions, recommendations, always_severe=False) -> SymptomRule:
    """Build a rule from (mild, moderate, severe) tuples."""
    order = (Severity.MILD, Severity.MODERATE, Severity.SEVERE)
    return SymptomRule(
        name=name,
        synonyms=tuple(synonyms),
        conditions=dict(zip(order, conditions)),
        recommendations={
            sev: Recommendation(action, text)
            for sev, (action, text) in zip(order, recommendations)
        },
        always_severe=always_severe,
    )


_SEEK_CARE = ("emergency", "Seek immediate medical attention")

SYMPTOM_RULES: list[SymptomRule] = [
    _rule(
        "snakebite",
        ["snake bite", "snakebite", "snake", "bitten", "venom", "सांप"],
        (
            "Possible dry bite or non-venomous snake bite",
            "Venomous snake bite requiring immediate attention",
            "Severe envenomation requiring emergency care",
        ),
        (
            ("visit clinic", "While it may be a non-venomous bite, medical evaluation is necessary for proper assessment"),
            ("emergency", "Proceed to emergency care immediately. Keep the affected area below heart level"),
            ("emergency", "IMMEDIATE EMERGENCY CARE REQUIRED. Call emergency services now"),
        ),
        always_severe=True,
    ),
    _rule(
        "fever",
        ["fever", "temperature", "hot", "chills", "बुखार"],
        (
            "Common cold or mild viral infection",
            "Flu or bacterial infection",
            "Severe infection or COVID-19",
        ),
        (
            ("self-care", "Rest, stay hydrated, and monitor temperature"),
            ("visit clinic", "Schedule a check-up within 24 hours"),
            _SEEK_CARE,
        ),
    ),
    _rule(
        "headache",
        ["headache", "migraine", "head pain", "सिरदर्द"],
        ("Tension headache", "Migraine", "Severe migraine or potential neurological issue"),
        (
            ("self-care", "Rest in a quiet dark room, stay hydrated"),
            ("visit clinic", "Consult a doctor for proper diagnosis"),
            _SEEK_CARE,
        ),
    ),
    _rule(
        "cough",
        ["cough", "coughing", "chest congestion", "खांसी", "कफ"],
        ("Common cold or mild allergies", "Bronchitis or persistent infection", "Severe respiratory infection"),
        (
            ("self-care", "Rest, stay hydrated, use honey for cough"),
            ("visit clinic", "Get checked for proper treatment"),
            _SEEK_CARE,
        ),
    ),
    _rule(
        "cold",
        ["cold", "runny nose", "sneezing", "blocked nose", "जुकाम", "सर्दी"],
        ("Common cold", "Sinus infection or flu", "Severe upper respiratory infection"),
        (
            ("self-care", "Rest, drink warm fluids and try steam inhalation"),
            ("visit clinic", "See a doctor if it lasts more than a week"),
            _SEEK_CARE,
        ),
    ),
    _rule(
        "stomach_pain",
        ["stomach pain", "abdominal pain", "belly ache", "stomach ache", "पेट दर्द"],
        ("Indigestion or gastritis", "Food poisoning or ulcer", "Possible appendicitis or acute abdomen"),
        (
            ("self-care", "Eat light meals and avoid spicy food"),
            ("visit clinic", "Consult a doctor within 24 hours"),
            _SEEK_CARE,
        ),
    ),
    _rule(
        "diarrhea",
        ["diarrhea", "diarrhoea", "loose motions", "दस्त"],
        ("Mild stomach upset", "Viral gastroenteritis or food poisoning", "Severe dehydration risk"),
        (
            ("self-care", "Drink ORS and plenty of fluids"),
            ("visit clinic", "Visit a clinic if it continues beyond 2 days"),
            _SEEK_CARE,
        ),
    ),
    _rule(
        "vomiting",
        ["vomiting", "nausea", "throwing up", "उल्टी", "जी मिचलाना"],
        ("Mild stomach upset", "Gastritis or food poisoning", "Severe dehydration or serious infection"),
        (
            ("self-care", "Sip fluids slowly and rest"),
            ("visit clinic", "Consult a doctor if vomiting continues"),
            _SEEK_CARE,
        ),
    ),
    _rule(
        "skin",
        ["rash", "skin", "itchy", "itching", "hives", "spots", "allergic", "dermatitis", "खुजली"],
        (
            "Minor skin irritation or contact dermatitis",
            "Acute allergic reaction or infection",
            "Severe allergic reaction or spreading infection",
        ),
        (
            ("self-care", "Monitor the condition and try over-the-counter treatments"),
            ("visit clinic", "Schedule an appointment with a dermatologist"),
            _SEEK_CARE,
        ),
    ),
    _rule(
        "wound",
        ["cut", "wound", "injury", "bleeding", "scrape", "burn", "laceration", "चोट"],
        (
            "Superficial wound or minor cut",
            "Deep cut or wound requiring medical attention",
            "Severe injury requiring immediate care",
        ),
        (
            ("self-care", "Clean the wound and apply appropriate first aid"),
            ("visit clinic", "Seek medical attention for proper wound care"),
            ("emergency", "Immediate emergency care required"),
        ),
    ),
]

# Used when the detected symptom has no rule of its own
UNSPECIFIED_RULE = _rule(
    "general",
    [],
    ("Unspecified condition",) * 3,
    (
        ("visit clinic", "Please consult a healthcare professional for proper diagnosis"),
        ("visit clinic", "Please consult a healthcare professional for proper diagnosis"),
        _SEEK_CARE,
    ),
)

SUMMARY_TEMPLATES: dict[str, str] = {
    "en": (
        "Thank you for answering my questions. Based on what you told me, "
        "this may be: {condition}.\n"
        "Severity: {severity}.\n"
        "Recommendation: {recommendation}."
    ),
    "hi": (
        "मेरे सवालों का जवाब देने के लिए धन्यवाद। आपकी जानकारी के आधार पर "
        "यह हो सकता है: {condition}।\n"
        "गंभीरता: {severity}।\n"
        "सलाह: {recommendation}।"
    ),
}


# ── Matching ───────────────────────────────────────────────────────────────


def normalize_text(text: str) -> str:
    """Lower-case and straighten typographic apostrophes."""
    return text.lower().replace("’", "'").replace("‘", "'")


def contains_term(text: str, term: str) -> bool:
    """
    Whole-word match for Latin-script terms, substring match otherwise.

    Devanagari has combining vowel signs that \\b does not treat as word
    characters, so word boundaries are unreliable there.
    """
    if not term.isascii():
        return term in text
    pattern = r"(?<![a-z0-9])" + re.escape(term) + r"(?![a-z0-9])"
    return re.search(pattern, text) is not None


def _lexicon_matches(text: str, lexicon: dict[str, list[str]], language: str) -> list[str]:
    text = normalize_text(text)
    terms = list(lexicon.get(language, []))
    if language != "en":
        terms.extend(lexicon["en"])
    return [term for term in terms if contains_term(text, term)]


def check_emergency_keywords(text: str, language: str = "en") -> list[str]:
    """
    Fast rule-based emergency keyword check.
    Returns the emergency phrases found in the text, checking the
    user's language and English.
    """
    return _lexicon_matches(text, EMERGENCY_KEYWORDS_BY_LANGUAGE, language)


def check_human_request(text: str, language: str = "en") -> list[str]:
    """Phrases asking to be put through to a person."""
    return _lexicon_matches(text, HUMAN_REQUEST_KEYWORDS, language)


# ── Triage Rule Table ──────────────────────────────────────────────────────

_SEVERITY_RANK = {Severity.MILD: 0, Severity.MODERATE: 1, Severity.SEVERE: 2}


class TriageRuleTable:
    """
    Maps a detected symptom plus the user's answers to an AssessmentResult.

    Severity is derived from intensity words across the answers; any
    emergency phrase counts as severe. Rules flagged always_severe ignore
    the answers. Symptoms without a rule get the unspecified rule and
    never rank below moderate. evaluate() always returns a result.
    """

    def __init__(self, rules: list[SymptomRule] | None = None):
        self.rules = list(rules if rules is not None else SYMPTOM_RULES)
        self._by_name = {rule.name: rule for rule in self.rules}

    def rule_for(self, symptom: str) -> SymptomRule | None:
        return self._by_name.get(symptom)

    def detect_symptom(self, text: str) -> str | None:
        """
        Keyword scan for a symptom mention.

        Rule synonyms are checked first (returning the rule name), then the
        general vocabulary (returning the matched word).
        """
        text = normalize_text(text)
        for rule in self.rules:
            if any(contains_term(text, syn) for syn in rule.synonyms):
                return rule.name
        for word in SYMPTOM_VOCABULARY:
            if contains_term(text, word):
                return word
        return None

    def severity_of(self, texts: list[str] | tuple[str, ...]) -> Severity:
        combined = normalize_text(" ".join(texts))
        if any(contains_term(combined, m) for m in SEVERE_MARKERS):
            return Severity.SEVERE
        if check_emergency_keywords(combined, "hi"):
            return Severity.SEVERE
        if any(contains_term(combined, m) for m in MODERATE_MARKERS):
            return Severity.MODERATE
        return Severity.MILD

    def evaluate(self, symptom: str, responses: tuple[str, ...], language: str = "en") -> AssessmentResult:
        rule = self.rule_for(symptom)
        severity = self.severity_of(responses)
        if rule is None:
            rule = UNSPECIFIED_RULE
            if _SEVERITY_RANK[severity] < _SEVERITY_RANK[Severity.MODERATE]:
                severity = Severity.MODERATE
        elif rule.always_severe:
            severity = Severity.SEVERE

        condition = rule.conditions[severity]
        recommendation = rule.recommendations[severity]
        template = SUMMARY_TEMPLATES.get(language, SUMMARY_TEMPLATES["en"])
        summary = template.format(
            condition=condition,
            severity=severity.value,
            recommendation=recommendation.text,
        )
        return AssessmentResult(
            symptom=symptom,
            responses=tuple(responses),
            severity=severity,
            condition=condition,
            recommended_action=recommendation.action,
            recommendation_text=recommendation.text,
            summary_text=summary,
        )
