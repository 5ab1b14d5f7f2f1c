import pytest

from triage.medical_knowledge import (
    check_emergency_keywords,
    check_human_request,
    contains_term,
)
from triage.models import Severity

CALM_ANSWERS = ("99", "1 day", "no", "no", "no")


def test_detects_rule_symptoms(rules):
    assert rules.detect_symptom("I have fever") == "fever"
    assert rules.detect_symptom("Terrible HEADACHE since morning") == "headache"
    assert rules.detect_symptom("मुझे बुखार है") == "fever"


def test_falls_back_to_general_vocabulary(rules):
    assert rules.detect_symptom("feeling dizzy today") == "dizzy"


def test_no_symptom(rules):
    assert rules.detect_symptom("what is the weather like") is None


def test_whole_word_matching_for_latin_script(rules):
    assert rules.detect_symptom("booking a hotel") is None
    assert not contains_term("shotgun", "hot")
    assert contains_term("it's too hot.", "hot")


def test_mild_fever(rules):
    result = rules.evaluate("fever", CALM_ANSWERS)
    assert result.severity == Severity.MILD
    assert result.condition == "Common cold or mild viral infection"
    assert result.recommended_action == "self-care"
    assert result.recommendation_text == "Rest, stay hydrated, and monitor temperature"
    assert result.responses == CALM_ANSWERS


def test_intensity_words_raise_severity(rules):
    moderate = rules.evaluate("fever", ("101", "3 days", "bad body ache", "no", "no"))
    assert moderate.severity == Severity.MODERATE
    assert moderate.condition == "Flu or bacterial infection"

    severe = rules.evaluate("fever", ("104", "the worst I've had", "no", "no", "no"))
    assert severe.severity == Severity.SEVERE
    assert severe.recommended_action == "emergency"


def test_emergency_phrase_in_answers_is_severe(rules):
    result = rules.evaluate("cough", ("100", "2 days", "coughing blood", "no", "no"))
    assert result.severity == Severity.SEVERE


def test_snakebite_is_always_severe(rules):
    result = rules.evaluate("snakebite", CALM_ANSWERS)
    assert result.severity == Severity.SEVERE
    assert result.condition == "Severe envenomation requiring emergency care"


def test_unknown_symptom_is_at_least_moderate(rules):
    result = rules.evaluate("dizzy", CALM_ANSWERS)
    assert result.condition == "Unspecified condition"
    assert result.severity == Severity.MODERATE
    assert result.recommended_action == "visit clinic"


def test_summary_is_localized(rules):
    english = rules.evaluate("fever", CALM_ANSWERS)
    hindi = rules.evaluate("fever", CALM_ANSWERS, "hi")
    assert "Recommendation:" in english.summary_text
    assert "सलाह" in hindi.summary_text


@pytest.mark.parametrize(
    "text,language",
    [
        ("I can't breathe", "en"),
        ("I can’t breathe", "en"),
        ("CHEST PAIN right now", "en"),
        ("मुझे सीने में दर्द है", "hi"),
        ("call an ambulance", "hi"),
    ],
)
def test_emergency_keywords(text, language):
    assert check_emergency_keywords(text, language)


def test_emergency_keywords_ignore_ordinary_text():
    assert check_emergency_keywords("I have a mild cold", "en") == []


def test_human_request():
    assert check_human_request("can I talk to a doctor please") == ["talk to a doctor"]
    assert check_human_request("humane society") == []
