"""Session repository protocol and the in-memory implementation."""

import copy
import logging
import threading
from datetime import datetime, timedelta
from typing import Protocol

from chatengine.session.state import ConversationState, Session

logger = logging.getLogger(__name__)


class SessionRepository(Protocol):
    """Persistence collaborator for sessions, keyed by sender id."""

    def get(self, sender_id: str) -> Session | None: ...

    def create(self, sender_id: str) -> Session: ...

    def save(self, session: Session) -> None: ...

    def delete(self, sender_id: str) -> bool: ...

    def cleanup_expired(self, max_idle_minutes: int, now: datetime | None = None) -> int: ...


class InMemorySessionStore:
    """Thread-safe in-memory session repository.

    Records are stored as deep copies and handed out as deep copies, so a
    change to a Session object only becomes visible to other readers once
    ``save`` is called with the whole record.

    Note: This implementation is suitable for single-instance deployments.
    For horizontal scaling, back SessionRepository with a shared database.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, sender_id: str) -> Session | None:
        """Get a snapshot of a session by sender id.

        Args:
            sender_id: The sender's phone number or contact id.

        Returns:
            A copy of the stored Session, or None if unknown.
        """
        with self._lock:
            session = self._sessions.get(sender_id)
            return copy.deepcopy(session) if session is not None else None

    def create(self, sender_id: str) -> Session:
        """Create and persist a session with default values.

        If a session already exists for the sender it is returned unchanged.

        Args:
            sender_id: The sender's phone number or contact id.

        Returns:
            A copy of the stored Session.
        """
        with self._lock:
            existing = self._sessions.get(sender_id)
            if existing is not None:
                return copy.deepcopy(existing)

            session = Session(sender_id=sender_id)
            self._sessions[sender_id] = session
            logger.debug("Creating session (sender_id=%s)", sender_id)
            return copy.deepcopy(session)

    def save(self, session: Session) -> None:
        """Persist the whole session record.

        Args:
            session: The session to store. Its state, token, user id,
                timestamps and the complete ``data`` mapping replace the
                stored values.
        """
        with self._lock:
            self._sessions[session.sender_id] = copy.deepcopy(session)

    def delete(self, sender_id: str) -> bool:
        """Delete a session.

        Returns:
            True if the session was deleted, False if not found.
        """
        with self._lock:
            if sender_id in self._sessions:
                logger.debug("Deleting session (sender_id=%s)", sender_id)
                del self._sessions[sender_id]
                return True
            return False

    def cleanup_expired(self, max_idle_minutes: int, now: datetime | None = None) -> int:
        """Remove NEW sessions idle longer than ``max_idle_minutes``.

        Sessions in any other state are never collected.

        Returns:
            Number of sessions removed.
        """
        now = now or datetime.now()
        cutoff = timedelta(minutes=max_idle_minutes)
        expired_ids: list[str] = []

        with self._lock:
            for sender_id, session in self._sessions.items():
                if session.state != ConversationState.NEW:
                    continue
                if now - session.last_activity > cutoff:
                    expired_ids.append(sender_id)

            for sender_id in expired_ids:
                del self._sessions[sender_id]

        if expired_ids:
            logger.info("Cleaned up %d idle sessions", len(expired_ids))

        return len(expired_ids)

    def count(self) -> int:
        """Get the number of stored sessions."""
        with self._lock:
            return len(self._sessions)

    def clear(self) -> None:
        """Remove all sessions."""
        with self._lock:
            count = len(self._sessions)
            self._sessions.clear()
            if count:
                logger.info("Cleared %d sessions", count)
