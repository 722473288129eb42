"""Observability module for the session engine.

This module provides AuditLogger, structured JSON audit events per turn.
"""

from chatengine.observability.audit import AuditLogger, configure_audit_logging
from chatengine.observability.models import AuditEvent, AuditEventType

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
    "configure_audit_logging",
]
