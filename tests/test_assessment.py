import pytest

from triage.assessment import (
    ACKNOWLEDGMENTS,
    PROTOCOL_QUESTIONS,
    AssessmentEngine,
    AssessmentStep,
)
from triage.errors import AssessmentProtocolViolation
from triage.models import AssessmentResult, AssessmentState, Severity

ANSWERS = ["101", "2 days", "chills", "paracetamol", "no"]


@pytest.fixture
def engine(rules):
    return AssessmentEngine(rules, selector=lambda phrases: phrases[-1])


def test_start_asks_first_question(engine):
    state = engine.start_assessment("fever")
    assert state == AssessmentState(symptom="fever", step_index=0, responses=())
    assert engine.question_for(state) == "What is your current body temperature?"


def test_each_answer_acknowledges_and_asks_next_question(engine):
    state = engine.start_assessment("fever")
    for i, answer in enumerate(ANSWERS[:4], start=1):
        step = engine.advance_assessment(state, answer)
        assert isinstance(step, AssessmentStep)
        assert step.state.step_index == i
        assert step.state.responses == tuple(ANSWERS[:i])
        assert step.acknowledgment == ACKNOWLEDGMENTS["en"][-1]
        assert step.question == PROTOCOL_QUESTIONS["en"][i]
        state = step.state


def test_fifth_answer_produces_result(engine):
    state = engine.start_assessment("fever")
    outcome = None
    for answer in ANSWERS:
        outcome = engine.advance_assessment(state, answer)
        if isinstance(outcome, AssessmentStep):
            state = outcome.state
    assert isinstance(outcome, AssessmentResult)
    assert outcome.symptom == "fever"
    assert outcome.responses == tuple(ANSWERS)
    assert outcome.severity == Severity.MILD


def test_states_are_not_mutated(engine):
    state = engine.start_assessment("cough")
    engine.advance_assessment(state, "100")
    assert state.step_index == 0
    assert state.responses == ()


def test_protocol_is_deterministic(rules):
    def run():
        engine = AssessmentEngine(rules, selector=lambda phrases: phrases[0])
        state = engine.start_assessment("headache")
        out = None
        for answer in ["99", "3 days", "bad nausea", "no", "no"]:
            out = engine.advance_assessment(state, answer)
            if isinstance(out, AssessmentStep):
                state = out.state
        return out

    assert run() == run()


def test_questions_in_hindi_and_unknown_language(engine):
    state = engine.start_assessment("fever")
    assert engine.question_for(state, "hi") == PROTOCOL_QUESTIONS["hi"][0]
    assert engine.question_for(state, "sw") == PROTOCOL_QUESTIONS["en"][0]


@pytest.mark.parametrize(
    "state",
    [
        AssessmentState(symptom="fever", step_index=5, responses=tuple(ANSWERS)),
        AssessmentState(symptom="fever", step_index=-1),
        AssessmentState(symptom="fever", step_index=2, responses=("only one",)),
    ],
)
def test_protocol_violations_fail_fast(engine, state):
    with pytest.raises(AssessmentProtocolViolation):
        engine.advance_assessment(state, "answer")
