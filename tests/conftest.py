import pytest

from database.memory import (
    InMemoryAnalyticsSink,
    InMemoryHealthWorkerDispatch,
    InMemoryMedicalRecordSink,
    InMemorySessionRepository,
)
from triage.assessment import AssessmentEngine
from triage.conversation_manager import ConversationManager
from triage.delivery import AnalyticsEmitter
from triage.medical_knowledge import TriageRuleTable
from triage.session_store import SessionStore


def first_phrase(phrases):
    return phrases[0]


@pytest.fixture
def rules():
    return TriageRuleTable()


@pytest.fixture
def repo():
    return InMemorySessionRepository()


@pytest.fixture
def records():
    return InMemoryMedicalRecordSink()


@pytest.fixture
def dispatch():
    return InMemoryHealthWorkerDispatch()


@pytest.fixture
def analytics_sink():
    return InMemoryAnalyticsSink()


@pytest.fixture
def make_manager(rules, repo, records, dispatch, analytics_sink):
    """Factory so tests can swap single collaborators."""

    def _make(**overrides):
        parts = {
            "store": SessionStore(repo),
            "records": records,
            "dispatch": dispatch,
            "analytics": AnalyticsEmitter(analytics_sink),
            "rules": rules,
            "assessment": AssessmentEngine(rules, selector=first_phrase),
        }
        parts.update(overrides)
        return ConversationManager(**parts)

    return _make


@pytest.fixture
def manager(make_manager):
    return make_manager()
