"""
Audit Subpackage for CallGuard

Structured audit events for consent changes, call decisions, webhook
rejections and retention sweeps. Events are emitted through structlog;
durable call-attempt records live in ``callguard.compliance.audit``.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Optional, Dict, Any
from enum import Enum
import uuid

import structlog

from ..constants import AuditEventTypes

logger = structlog.get_logger("callguard.audit")


class AuditSeverity(str, Enum):
    """Audit event severity levels"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class AuditEvent:
    """
    Represents an audit event for compliance logging.

    Attributes:
        event_type: Type of audit event
        subject: Masked phone number or other subject reference
        severity: Event severity level
        message: Human-readable description
        details: Additional structured data
        timestamp: When the event occurred
        event_id: Unique identifier for the event
    """
    event_type: str
    subject: Optional[str] = None
    severity: AuditSeverity = AuditSeverity.INFO
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        """Convert audit event to dictionary for logging/storage"""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "severity": self.severity.value,
            "subject": self.subject,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


def emit(event: AuditEvent) -> AuditEvent:
    """Write an audit event to the structured log at its severity"""
    payload = event.to_dict()
    message = payload.pop("message") or event.event_type
    payload["occurred_at"] = payload.pop("timestamp")
    getattr(logger, event.severity.value)(message, audit=True, **payload)
    return event


def create_consent_event(
    event_type: str,
    subject: str,
    channel: str,
    source: Optional[str] = None,
    record_id: Optional[str] = None
) -> AuditEvent:
    """
    Create a consent-related audit event.

    Args:
        event_type: Type of consent event
        subject: Masked phone number whose consent changed
        channel: Consent channel affected
        source: Where the grant came from (if applicable)
        record_id: Consent record affected

    Returns:
        AuditEvent configured for consent tracking
    """
    details: Dict[str, Any] = {"channel": channel}
    if source:
        details["source"] = source
    if record_id:
        details["record_id"] = record_id

    return AuditEvent(
        event_type=event_type,
        subject=subject,
        severity=AuditSeverity.INFO,
        message=f"Consent {event_type} for channel '{channel}'",
        details=details
    )


def create_call_decision_event(
    subject: str,
    allowed: bool,
    reason: str,
    timezone: str
) -> AuditEvent:
    """Create an audit event for a compliance gate decision"""
    return AuditEvent(
        event_type=AuditEventTypes.CALL_ALLOWED if allowed else AuditEventTypes.CALL_DENIED,
        subject=subject,
        severity=AuditSeverity.INFO if allowed else AuditSeverity.WARNING,
        message="Outbound call allowed" if allowed else "Outbound call denied",
        details={"reason": reason, "timezone": timezone}
    )


def create_security_event(
    event_type: str,
    message: str,
    severity: AuditSeverity = AuditSeverity.WARNING,
    details: Optional[Dict[str, Any]] = None
) -> AuditEvent:
    """
    Create a security-related audit event.

    Args:
        event_type: Type of security event
        message: Description of the event
        severity: Event severity
        details: Additional context

    Returns:
        AuditEvent configured for security tracking
    """
    return AuditEvent(
        event_type=event_type,
        severity=severity,
        message=message,
        details=details or {}
    )


__all__ = [
    "AuditSeverity",
    "AuditEvent",
    "emit",
    "create_consent_event",
    "create_call_decision_event",
    "create_security_event",
]
