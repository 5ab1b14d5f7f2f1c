"""
Error taxonomy for the triage engine.

Only AssessmentProtocolViolation and SessionStateError indicate bugs.
Everything else is recovered somewhere between the channel adapter and
the user so that a turn never ends without a reply.
"""


class TriageError(Exception):
    """Base class for all engine errors."""


class ValidationError(TriageError):
    """Inbound message is empty or malformed. Rejected at the adapter boundary."""


class AssessmentProtocolViolation(TriageError):
    """Assessment state is outside the fixed 5-step protocol."""


class SessionStateError(TriageError):
    """A session was asked to make a transition the state machine forbids."""


class DispatchUnavailable(TriageError):
    """No health worker could be assigned or notified."""


class PersistenceError(TriageError):
    """Session or record storage failed. Retryable."""


class ReplyGenerationError(TriageError):
    """The reply generator failed or returned nothing usable."""


class ChannelDeliveryError(TriageError):
    """An outbound message could not be handed to the channel provider."""
