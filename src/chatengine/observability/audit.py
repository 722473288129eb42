"""Structured audit logging for conversation turns.

This module provides the AuditLogger class that emits structured JSON
audit events for debugging and analytics purposes.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from chatengine.observability.models import AuditEvent, AuditEventType

# Dedicated audit logger - separate from application logs
audit_logger = logging.getLogger("chatengine.audit")

PREVIEW_LENGTH = 100


class AuditLogger:
    """Structured audit logger for one turn.

    All audit events include:
    - event_type: The type of event
    - timestamp: ISO 8601 timestamp
    - turn_id: Turn correlation ID
    - sender_id: The sender the turn belongs to
    - Additional event-specific metadata

    Usage:
        audit = AuditLogger(turn_id="wamid.123", sender_id="2348012345678")
        audit.log_message_received(kind="text", text_preview="hi")
        audit.log_intent_resolved(intent="greeting", source="rule", confidence=1.0)
    """

    def __init__(self, turn_id: str, sender_id: str, enabled: bool = True) -> None:
        """Initialize the audit logger.

        Args:
            turn_id: Correlation id, usually the inbound message id.
            sender_id: The sender's id.
            enabled: Whether audit logging is enabled.
        """
        self._turn_id = turn_id
        self._sender_id = sender_id
        self._enabled = enabled

    def _emit(self, event_type: AuditEventType, **metadata: Any) -> None:
        if not self._enabled:
            return

        try:
            event = AuditEvent(
                event_type=event_type,
                timestamp=datetime.now(UTC),
                turn_id=self._turn_id,
                sender_id=self._sender_id,
                metadata=metadata,
            )
            audit_logger.info(json.dumps(event.to_dict(), default=str))
        except Exception as e:
            # Don't let audit logging failures affect the turn
            logging.getLogger(__name__).warning("Failed to emit audit event: %s", e)

    def log_message_received(self, kind: str, text_preview: str | None = None) -> None:
        """Log an inbound message.

        Args:
            kind: Message kind (text, interactive, location, ...).
            text_preview: Message text, truncated to 100 characters.
        """
        metadata: dict[str, Any] = {"kind": kind}
        if text_preview:
            metadata["text_preview"] = text_preview[:PREVIEW_LENGTH]
        self._emit(AuditEventType.MESSAGE_RECEIVED, **metadata)

    def log_intent_resolved(
        self,
        intent: str,
        source: str,
        confidence: float,
        requires_auth: bool,
    ) -> None:
        """Log the intent resolved for the turn."""
        self._emit(
            AuditEventType.INTENT_RESOLVED,
            intent=intent,
            source=source,
            confidence=round(confidence, 4),
            requires_auth=requires_auth,
        )

    def log_auth_blocked(self, intent: str) -> None:
        """Log that the guard replaced a protected intent."""
        self._emit(AuditEventType.AUTH_BLOCKED, intent=intent)

    def log_session_event(self, action: str, reason: str | None = None) -> None:
        """Log a session lifecycle event.

        Args:
            action: created, expired, context_discarded, authenticated or
                logged_out.
            reason: Optional reason, e.g. "idle".
        """
        event_type_map = {
            "created": AuditEventType.SESSION_CREATED,
            "expired": AuditEventType.SESSION_EXPIRED,
            "context_discarded": AuditEventType.CONTEXT_DISCARDED,
            "authenticated": AuditEventType.SESSION_AUTHENTICATED,
            "logged_out": AuditEventType.SESSION_LOGGED_OUT,
        }
        event_type = event_type_map.get(action)
        if event_type is None:
            logging.getLogger(__name__).warning("Unknown session audit action: %s", action)
            return

        metadata: dict[str, Any] = {"action": action}
        if reason:
            metadata["reason"] = reason
        self._emit(event_type, **metadata)

    def log_handler_failed(self, intent: str, error: Exception) -> None:
        """Log an unhandled handler exception.

        Only the exception type and a truncated message are recorded.
        """
        self._emit(
            AuditEventType.HANDLER_FAILED,
            intent=intent,
            error_type=type(error).__name__,
            error_message=str(error)[:200] or "Unknown error",
        )

    def log_reply_failed(self, message_kind: str, error: Exception) -> None:
        """Log an outbound message that could not be delivered."""
        self._emit(
            AuditEventType.REPLY_FAILED,
            message_kind=message_kind,
            error_message=str(error)[:200] or "Unknown error",
            status_code=getattr(error, "status_code", None),
        )


def configure_audit_logging(level: str = "INFO") -> None:
    """Configure the audit logger with its own handler.

    Args:
        level: The logging level for audit events.
    """
    audit_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Only add handler if not already configured
    if not audit_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(getattr(logging, level.upper(), logging.INFO))

        # Simple format - the message is already JSON
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)

        audit_logger.addHandler(handler)

    # Prevent propagation to root logger to avoid duplicate output
    audit_logger.propagate = False
