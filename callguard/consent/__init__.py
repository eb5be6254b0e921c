"""
Consent management module for CallGuard
TCPA consent tracking and the internal do-not-call list
"""

from .models import ConsentRecord, ConsentChannel, ConsentSource
from .ledger import (
    ConsentLedger,
    get_consent_ledger,
    record_grant,
    revoke,
    has_active_consent,
    history,
)
from .storage import ConsentStorage, InMemoryConsentStorage
from .dnc import DoNotCallEntry, DoNotCallList

__all__ = [
    "ConsentRecord",
    "ConsentChannel",
    "ConsentSource",
    "ConsentLedger",
    "get_consent_ledger",
    "record_grant",
    "revoke",
    "has_active_consent",
    "history",
    "ConsentStorage",
    "InMemoryConsentStorage",
    "DoNotCallEntry",
    "DoNotCallList",
]
