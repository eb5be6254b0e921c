"""
Consent ledger for CallGuard
Grant, revoke and look up TCPA consent per phone number and channel
"""

from datetime import datetime, timedelta, UTC
from typing import Callable, List, Optional

import structlog

from ..audit import create_consent_event, emit
from ..config import get_config
from ..constants import AuditEventTypes, ConsentDefaults
from ..crypto.encrypt import EncryptionService, get_encryption_service, mask_for_display
from ..utils.validators import validate_phone
from .models import ConsentChannel, ConsentRecord, ConsentSource
from .storage import ConsentStorage

logger = structlog.get_logger(__name__)

PROOF_FIELD = "consent.proof"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ConsentLedger:
    """
    Durable record of consent grants and revocations.

    At most one record per (phone, channel) is active at any instant: a new
    grant supersedes the open record in the same store transaction.
    """

    def __init__(self, storage: ConsentStorage,
                 cipher: Optional[EncryptionService] = None,
                 default_expiry_days: Optional[int] = None,
                 clock: Clock = _utcnow):
        self.storage = storage
        self.cipher = cipher
        self.default_expiry_days = default_expiry_days
        self.clock = clock

    def record_grant(self, phone: str, channel: ConsentChannel, source: ConsentSource,
                     proof: Optional[str] = None,
                     expires_at: Optional[datetime] = None) -> ConsentRecord:
        """Record a consent grant, superseding any active grant for the same channel"""
        phone = validate_phone(phone)
        now = self.clock()

        if expires_at is None and self.default_expiry_days is not None:
            expires_at = now + timedelta(days=self.default_expiry_days)

        consent = ConsentRecord(
            subject_phone=phone,
            channel=channel,
            source=source,
            proof=proof,
            granted_at=now,
            expires_at=expires_at,
        )

        stored = consent
        if proof is not None and self.cipher is not None:
            stored = consent.model_copy(update={"proof": self.cipher.encrypt_field(PROOF_FIELD, proof)})

        superseded = self.storage.supersede_and_insert(stored, now)

        masked = mask_for_display(phone)
        for record_id in superseded:
            emit(create_consent_event(AuditEventTypes.CONSENT_SUPERSEDED, masked,
                                      channel.value, record_id=record_id))
        emit(create_consent_event(AuditEventTypes.CONSENT_GRANTED, masked, channel.value,
                                  source=source.value, record_id=consent.id))
        return consent

    def revoke(self, phone: str, channel: ConsentChannel) -> None:
        """Revoke the active grant; a no-op when none is active"""
        phone = validate_phone(phone)
        revoked = self.storage.revoke_active(phone, channel, self.clock())

        if revoked is None:
            logger.info("No active consent to revoke", phone=mask_for_display(phone),
                        channel=channel.value)
            return

        emit(create_consent_event(AuditEventTypes.CONSENT_REVOKED, mask_for_display(phone),
                                  channel.value, record_id=revoked.id))

    def has_active_consent(self, phone: str, channel: ConsentChannel,
                           at: Optional[datetime] = None) -> bool:
        """True iff an unrevoked grant exists that is unexpired at ``at`` (default: now)"""
        phone = validate_phone(phone)
        return self.storage.get_active(phone, channel, at or self.clock()) is not None

    def history(self, phone: str) -> List[ConsentRecord]:
        """Every record for a phone ordered by grant time, proofs decrypted"""
        phone = validate_phone(phone)
        return [self._reveal(record) for record in self.storage.list_for_phone(phone)]

    def _reveal(self, record: ConsentRecord) -> ConsentRecord:
        if (self.cipher is None or record.proof is None
                or record.proof == ConsentDefaults.REDACTED_PROOF):
            return record
        return record.model_copy(
            update={"proof": self.cipher.decrypt_field(PROOF_FIELD, record.proof)}
        )


# Global consent ledger instance
_consent_ledger: Optional[ConsentLedger] = None


def get_consent_ledger() -> ConsentLedger:
    """Get the global consent ledger instance"""
    global _consent_ledger
    if _consent_ledger is None:
        config = get_config()
        _consent_ledger = ConsentLedger(
            ConsentStorage(config.database_url),
            cipher=get_encryption_service(),
            default_expiry_days=config.consent_expiry_days,
        )
    return _consent_ledger


# Convenience functions
def record_grant(phone: str, channel: ConsentChannel, source: ConsentSource,
                 proof: Optional[str] = None,
                 expires_at: Optional[datetime] = None) -> ConsentRecord:
    """Record a consent grant"""
    return get_consent_ledger().record_grant(phone, channel, source, proof, expires_at)


def revoke(phone: str, channel: ConsentChannel) -> None:
    """Revoke the active consent for a channel"""
    get_consent_ledger().revoke(phone, channel)


def has_active_consent(phone: str, channel: ConsentChannel,
                       at: Optional[datetime] = None) -> bool:
    """Check for an active consent grant"""
    return get_consent_ledger().has_active_consent(phone, channel, at)


def history(phone: str) -> List[ConsentRecord]:
    """Consent history for a phone"""
    return get_consent_ledger().history(phone)
