"""Session storage and lifecycle management."""

from chatengine.session.locks import SenderLocks
from chatengine.session.manager import ExpiryOutcome, SessionManager
from chatengine.session.state import ConversationState, Session
from chatengine.session.store import InMemorySessionStore, SessionRepository

__all__ = [
    "ConversationState",
    "ExpiryOutcome",
    "InMemorySessionStore",
    "SenderLocks",
    "Session",
    "SessionManager",
    "SessionRepository",
]
