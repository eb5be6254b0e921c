"""
Consent data models for CallGuard
TCPA consent records per phone number and contact channel
"""

from datetime import datetime, UTC
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from ..utils.ids import generate_consent_id


class ConsentChannel(str, Enum):
    """Contact channels that require their own consent"""
    VOICE = "voice"
    SMS = "sms"
    EMAIL = "email"


class ConsentSource(str, Enum):
    """How consent was captured"""
    WEB_FORM = "web_form"
    VOICE = "voice"
    SMS = "sms"
    REFERRAL = "referral"


class ConsentRecord(BaseModel):
    """Individual consent grant; only ``revoked_at`` changes after creation"""
    id: str = Field(default_factory=generate_consent_id)
    subject_phone: str = Field(..., description="E.164 phone number")
    channel: ConsentChannel
    source: ConsentSource
    proof: Optional[str] = Field(
        default=None,
        description="Opaque proof reference: IP, user agent or recording id"
    )

    granted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    revoked_at: Optional[datetime] = Field(default=None)
    expires_at: Optional[datetime] = Field(default=None)

    def is_active(self, at: Optional[datetime] = None) -> bool:
        """Active means not revoked and not past its expiry"""
        at = at or datetime.now(UTC)
        if self.revoked_at is not None:
            return False
        return self.expires_at is None or self.expires_at > at
