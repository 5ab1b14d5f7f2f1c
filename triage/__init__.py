"""
Triage package — Multi-channel Health Triage Conversation Engine.
"""

from triage.conversation_manager import ConversationManager
from triage.intent_classifier import IntentClassifier
from triage.models import InboundMessage, OutboundMessage, Platform, SessionStatus
from triage.session_store import SessionStore

__all__ = [
    "ConversationManager",
    "InboundMessage",
    "IntentClassifier",
    "OutboundMessage",
    "Platform",
    "SessionStatus",
    "SessionStore",
]
