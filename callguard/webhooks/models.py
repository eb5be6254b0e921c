"""
Webhook data models for CallGuard
Inbound provider events and verification verdicts
"""

from datetime import datetime, UTC
from enum import Enum
from typing import Mapping, Optional
from pydantic import BaseModel, Field, field_validator

from ..constants import WebhookHeaders
from ..database import as_utc


class WebhookRejectReason(str, Enum):
    """Why a webhook failed verification"""
    MISSING_CREDENTIALS = "missing_credentials"
    STALE_TIMESTAMP = "stale_timestamp"
    INVALID_SIGNATURE = "invalid_signature"
    NONE = "none"


class WebhookEvent(BaseModel):
    """Inbound provider webhook as received; never persisted here"""
    raw_body: bytes
    signature: Optional[str] = None
    timestamp: Optional[str] = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("received_at")
    @classmethod
    def _received_at_utc(cls, value: datetime) -> datetime:
        # Naive receive times are UTC, never host-local
        return as_utc(value)

    @classmethod
    def from_request(cls, raw_body: bytes, headers: Mapping[str, str],
                     received_at: Optional[datetime] = None) -> "WebhookEvent":
        """Build an event from the untouched request body and its headers"""
        lowered = {k.lower(): v for k, v in headers.items()}
        fields = {
            "raw_body": raw_body,
            "signature": lowered.get(WebhookHeaders.TELNYX_SIGNATURE),
            "timestamp": lowered.get(WebhookHeaders.TELNYX_TIMESTAMP),
        }
        if received_at is not None:
            fields["received_at"] = received_at
        return cls(**fields)


class WebhookVerdict(BaseModel):
    """Outcome of webhook verification"""
    valid: bool
    reason: WebhookRejectReason = WebhookRejectReason.NONE

    def __bool__(self) -> bool:
        return self.valid

    @classmethod
    def accept(cls) -> "WebhookVerdict":
        return cls(valid=True)

    @classmethod
    def reject(cls, reason: WebhookRejectReason) -> "WebhookVerdict":
        return cls(valid=False, reason=reason)
