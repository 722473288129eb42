"""Data models for the audit trail."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class AuditEventType(str, Enum):
    """Types of audit events logged per turn."""

    MESSAGE_RECEIVED = "message_received"
    INTENT_RESOLVED = "intent_resolved"
    AUTH_BLOCKED = "auth_blocked"
    SESSION_CREATED = "session_created"
    SESSION_EXPIRED = "session_expired"
    CONTEXT_DISCARDED = "context_discarded"
    SESSION_AUTHENTICATED = "session_authenticated"
    SESSION_LOGGED_OUT = "session_logged_out"
    HANDLER_FAILED = "handler_failed"
    REPLY_FAILED = "reply_failed"


@dataclass
class AuditEvent:
    """A structured audit event for logging.

    Provides a consistent format for audit trail entries that can
    be serialized to JSON for structured logging.
    """

    event_type: AuditEventType
    """The type of audit event."""

    timestamp: datetime
    """When the event occurred."""

    turn_id: str
    """Correlation id of the turn."""

    sender_id: str
    """The sender the turn belongs to."""

    metadata: dict[str, Any] = field(default_factory=dict)
    """Event-specific metadata."""

    def to_dict(self) -> dict[str, Any]:
        """Convert the audit event to a dictionary for JSON serialization."""
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "turn_id": self.turn_id,
            "sender_id": self.sender_id,
            **self.metadata,
        }
