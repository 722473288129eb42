"""Session dataclass and conversation state enum."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any


class ConversationState(str, Enum):
    """Lifecycle states of a sender's session."""

    NEW = "NEW"
    REGISTERING = "REGISTERING"
    LOGGING_IN = "LOGGING_IN"
    LOGGED_IN = "LOGGED_IN"
    SUPPORT_CHAT = "SUPPORT_CHAT"


@dataclass
class Session:
    """Conversation state for one sender identity.

    ``data`` holds transient context (flow drafts, pagination cursors, OTP
    flags). It is replaced as a whole value through ``update_data``,
    ``discard_data`` and ``replace_data`` rather than mutated in place, so
    the store always receives the complete new mapping on save.
    """

    sender_id: str
    state: ConversationState = ConversationState.NEW
    token: str | None = None
    token_created_at: datetime | None = None
    user_id: str | None = None
    login_time: datetime | None = None
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)
    data: dict[str, Any] = field(default_factory=dict)

    def touch(self, now: datetime | None = None) -> None:
        """Advance the last activity timestamp. Never moves it backwards."""
        now = now or datetime.now()
        if now > self.last_activity:
            self.last_activity = now

    def idle_for(self, now: datetime | None = None) -> timedelta:
        """Time elapsed since the last recorded activity."""
        return (now or datetime.now()) - self.last_activity

    def is_idle_expired(self, timeout_minutes: int, now: datetime | None = None) -> bool:
        """Check if the session has been idle longer than the timeout.

        Args:
            timeout_minutes: Idle timeout in minutes.
            now: Reference time, defaults to the current time.

        Returns:
            True if the idle time strictly exceeds the timeout.
        """
        return self.idle_for(now) > timedelta(minutes=timeout_minutes)

    def is_authenticated(self, timeout_minutes: int, now: datetime | None = None) -> bool:
        """Check whether the session currently holds a live login.

        A session is authenticated when it has a token, is LOGGED_IN and has
        not been idle longer than the timeout.
        """
        return (
            self.token is not None
            and self.state == ConversationState.LOGGED_IN
            and not self.is_idle_expired(timeout_minutes, now)
        )

    @property
    def has_credentials(self) -> bool:
        """Whether a token is held, regardless of idle time."""
        return self.token is not None and self.state in (
            ConversationState.LOGGED_IN,
            ConversationState.SUPPORT_CHAT,
        )

    def update_data(self, **changes: Any) -> None:
        """Replace ``data`` with a copy that includes the given keys."""
        self.data = {**self.data, **changes}

    def discard_data(self, *keys: str) -> None:
        """Replace ``data`` with a copy that omits the given keys."""
        self.data = {k: v for k, v in self.data.items() if k not in keys}

    def replace_data(self, data: dict[str, Any]) -> None:
        """Replace ``data`` wholesale."""
        self.data = dict(data)

    def reset(self) -> None:
        """Return to NEW and drop credentials and all transient context."""
        self.state = ConversationState.NEW
        self.token = None
        self.token_created_at = None
        self.user_id = None
        self.login_time = None
        self.data = {}
