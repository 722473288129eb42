"""Session lifecycle: lookup, idle expiry, authentication and logout."""

import logging
from datetime import datetime
from enum import Enum

from chatengine.auth.tokens import generate_token, needs_refresh
from chatengine.session.state import ConversationState, Session
from chatengine.session.store import SessionRepository

logger = logging.getLogger(__name__)

# Keys whose presence means a multi-turn exchange is in progress
CONTEXT_KEYS = ("flow", "step", "draft", "waitingForOTPVerification")


class ExpiryOutcome(str, Enum):
    """Result of the idle check that opens every turn."""

    ACTIVE = "active"
    SESSION_EXPIRED = "session_expired"
    CONTEXT_DISCARDED = "context_discarded"


class SessionManager:
    """Applies the session state machine on top of a repository.

    The idle check must run before ``touch`` on every turn: it compares the
    current time with the previous turn's ``last_activity``. Touching first
    would make expiry undetectable.
    """

    def __init__(
        self,
        store: SessionRepository,
        idle_timeout_minutes: int = 20,
        token_expiry_minutes: int = 60,
        token_refresh_threshold_minutes: int = 5,
    ) -> None:
        """Initialize the session manager.

        Args:
            store: Session persistence collaborator.
            idle_timeout_minutes: Inactivity before a login is dropped.
            token_expiry_minutes: Token lifetime.
            token_refresh_threshold_minutes: Refresh window before expiry.
        """
        self._store = store
        self._idle_timeout_minutes = idle_timeout_minutes
        self._token_expiry_minutes = token_expiry_minutes
        self._token_refresh_threshold_minutes = token_refresh_threshold_minutes

    @property
    def idle_timeout_minutes(self) -> int:
        """Get the idle timeout in minutes."""
        return self._idle_timeout_minutes

    @property
    def store(self) -> SessionRepository:
        """Get the underlying repository."""
        return self._store

    def get_or_create(self, sender_id: str) -> tuple[Session, bool]:
        """Load the sender's session, creating it in NEW if unseen.

        Returns:
            Tuple of (session, created).
        """
        session = self._store.get(sender_id)
        if session is not None:
            return session, False

        logger.info("New session for sender %s", sender_id)
        return self._store.create(sender_id), True

    def expire_if_idle(self, session: Session, now: datetime | None = None) -> ExpiryOutcome:
        """Drop a stale login or stale flow context.

        Args:
            session: The session loaded for this turn, not yet touched.
            now: Reference time, defaults to the current time.

        Returns:
            SESSION_EXPIRED if a login was dropped, CONTEXT_DISCARDED if an
            unauthenticated flow or OTP wait was dropped, else ACTIVE.
        """
        now = now or datetime.now()
        if not session.is_idle_expired(self._idle_timeout_minutes, now):
            return ExpiryOutcome.ACTIVE

        if session.has_credentials:
            logger.info(
                "Session expired after %s idle (sender_id=%s, state=%s)",
                session.idle_for(now),
                session.sender_id,
                session.state.value,
            )
            session.reset()
            return ExpiryOutcome.SESSION_EXPIRED

        if session.state != ConversationState.NEW or any(k in session.data for k in CONTEXT_KEYS):
            logger.info(
                "Discarding stale context (sender_id=%s, state=%s)",
                session.sender_id,
                session.state.value,
            )
            session.reset()
            return ExpiryOutcome.CONTEXT_DISCARDED

        return ExpiryOutcome.ACTIVE

    def touch(
        self, session: Session, now: datetime | None = None, suppress: bool = False
    ) -> None:
        """Record activity for this turn.

        Args:
            session: Session to update.
            now: Turn time.
            suppress: Leave the last activity timestamp as it is.
        """
        if suppress:
            logger.debug("Activity refresh suppressed (sender_id=%s)", session.sender_id)
            return
        session.touch(now)

    def save(self, session: Session) -> None:
        """Persist the whole session record."""
        self._store.save(session)

    def is_authenticated(self, session: Session, now: datetime | None = None) -> bool:
        """Check the session's login against the idle timeout."""
        return session.is_authenticated(self._idle_timeout_minutes, now)

    def authenticate(self, session: Session, user_id: str, now: datetime | None = None) -> str:
        """Complete a login or registration.

        Assigns a fresh token, records the login time and moves the session
        to LOGGED_IN. Auth flow fields in ``data`` are dropped.

        Returns:
            The issued token.
        """
        now = now or datetime.now()
        token = generate_token()
        session.token = token
        session.token_created_at = now
        session.user_id = user_id
        session.login_time = now
        session.state = ConversationState.LOGGED_IN
        session.discard_data(
            "flow",
            "step",
            "draft",
            "registration",
            "waitingForOTPVerification",
            "emailSendFailed",
        )
        logger.info("Session authenticated (sender_id=%s, user_id=%s)", session.sender_id, user_id)
        return token

    def refresh_token_if_needed(self, session: Session, now: datetime | None = None) -> bool:
        """Rotate the token when it is inside the refresh window.

        Returns:
            True if a new token was issued.
        """
        if session.token is None:
            return False
        if not needs_refresh(
            session.token_created_at,
            self._token_expiry_minutes,
            self._token_refresh_threshold_minutes,
            now,
        ):
            return False

        session.token = generate_token()
        session.token_created_at = now or datetime.now()
        logger.debug("Token refreshed (sender_id=%s)", session.sender_id)
        return True

    def logout(self, session: Session) -> None:
        """Clear credentials and context, returning to NEW."""
        logger.info("Session logged out (sender_id=%s)", session.sender_id)
        session.reset()

    def cleanup(self, max_idle_minutes: int, now: datetime | None = None) -> int:
        """Garbage-collect long idle NEW sessions."""
        return self._store.cleanup_expired(max_idle_minutes, now)
