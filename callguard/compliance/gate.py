"""
Compliance gate for CallGuard
Single allow/deny decision per outbound call attempt
"""

from datetime import datetime, UTC
from typing import Callable, Optional

import structlog
from pydantic import BaseModel

from ..audit import create_call_decision_event, emit
from ..config import get_config
from ..consent.dnc import DoNotCallList
from ..consent.ledger import ConsentLedger, get_consent_ledger
from ..consent.models import ConsentChannel
from ..crypto.encrypt import mask_for_display
from ..utils.validators import validate_phone, validate_timezone
from .audit import CallAttempt, CallAttemptStorage, CallOutcome, DenyReason
from .hours import CallingHoursPolicy, to_recipient_local

logger = structlog.get_logger(__name__)


class ComplianceDecision(BaseModel):
    """Verdict for one outbound call attempt"""
    allowed: bool
    reason: DenyReason = DenyReason.NONE

    def __bool__(self) -> bool:
        return self.allowed


class ComplianceGate:
    """
    Evaluates, in order: calling hours in the recipient's timezone, the
    internal do-not-call list, then active voice consent. Lookup failures
    deny. Every evaluation appends one CallAttempt record.
    """

    def __init__(self, ledger: ConsentLedger, attempts: CallAttemptStorage,
                 hours: Optional[CallingHoursPolicy] = None,
                 dnc: Optional[DoNotCallList] = None,
                 clock: Callable[[], datetime] = lambda: datetime.now(UTC)):
        self.ledger = ledger
        self.attempts = attempts
        self.hours = hours or CallingHoursPolicy()
        self.dnc = dnc
        self.clock = clock

    def can_call(self, phone: str, now_local: datetime, timezone: str) -> ComplianceDecision:
        """
        Decide whether an outbound call may be placed now.

        Args:
            phone: Recipient E.164 number
            now_local: Current time; naive values are read as wall-clock time in ``timezone``
                and consent expiry is judged at this same instant
            timezone: Recipient's IANA timezone

        Raises:
            ValidationError: malformed phone or unknown timezone
            StoreUnavailableError: the audit record could not be written
        """
        phone = validate_phone(phone)
        local = to_recipient_local(now_local, validate_timezone(timezone))

        decision = self._evaluate(phone, local)

        self.attempts.append(CallAttempt(
            subject_phone=phone,
            timestamp_local=local.replace(tzinfo=None),
            timezone=timezone,
            outcome=CallOutcome.ALLOWED if decision.allowed else CallOutcome.DENIED,
            deny_reason=decision.reason,
            created_at=self.clock(),
        ))
        emit(create_call_decision_event(mask_for_display(phone), decision.allowed,
                                        decision.reason.value, timezone))
        return decision

    def _evaluate(self, phone: str, local: datetime) -> ComplianceDecision:
        if not self.hours.is_allowed(local.time()):
            return ComplianceDecision(allowed=False, reason=DenyReason.OUTSIDE_HOURS)

        try:
            if self.dnc is not None and self.dnc.is_listed(phone):
                return ComplianceDecision(allowed=False, reason=DenyReason.DO_NOT_CALL)

            if not self.ledger.has_active_consent(phone, ConsentChannel.VOICE, at=local):
                return ComplianceDecision(allowed=False, reason=DenyReason.NO_CONSENT)
        except Exception as e:
            logger.error("Consent lookup failed - denying call",
                         phone=mask_for_display(phone), error=str(e))
            return ComplianceDecision(allowed=False, reason=DenyReason.CONSENT_LOOKUP_FAILED)

        return ComplianceDecision(allowed=True)


# Global compliance gate instance
_compliance_gate: Optional[ComplianceGate] = None


def get_compliance_gate() -> ComplianceGate:
    """Get the global compliance gate instance"""
    global _compliance_gate
    if _compliance_gate is None:
        config = get_config()
        _compliance_gate = ComplianceGate(
            ledger=get_consent_ledger(),
            attempts=CallAttemptStorage(config.database_url),
            hours=CallingHoursPolicy.from_config(config),
            dnc=DoNotCallList(config.database_url),
        )
    return _compliance_gate


def can_call(phone: str, now_local: datetime, timezone: str) -> ComplianceDecision:
    """Decide whether an outbound call may be placed now"""
    return get_compliance_gate().can_call(phone, now_local, timezone)
