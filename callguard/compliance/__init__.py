"""
Call compliance module for CallGuard
Calling-hours policy, the compliance gate and its call-attempt audit trail
"""

from .audit import (
    CallAttempt,
    CallAttemptStorage,
    CallOutcome,
    DenyReason,
    InMemoryCallAttemptStorage,
)
from .gate import ComplianceDecision, ComplianceGate, can_call, get_compliance_gate
from .hours import CallingHoursPolicy, to_recipient_local

__all__ = [
    "CallAttempt",
    "CallAttemptStorage",
    "CallOutcome",
    "DenyReason",
    "InMemoryCallAttemptStorage",
    "ComplianceDecision",
    "ComplianceGate",
    "can_call",
    "get_compliance_gate",
    "CallingHoursPolicy",
    "to_recipient_local",
]
