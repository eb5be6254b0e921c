"""
CallGuard Compliance Engine
TCPA consent tracking, outbound call gating, webhook trust and data retention
"""

__version__ = "0.1.0"

# Core exports
from .config import ComplianceConfig, CipherSuite, get_config

# Exceptions
from .exceptions import (
    SecurityError, EncryptionError, KeyNotConfiguredError, UnknownKeyVersionError,
    AuthenticationFailedError, WebhookConfigurationError, StoreError,
    StoreUnavailableError, ValidationError
)

# Cryptography
from .crypto import (
    EncryptedBlob, EncryptionService, KeyRing, generate_key, mask_for_display
)

# Webhook trust
from .webhooks import (
    WebhookEvent, WebhookVerdict, WebhookRejectReason, WebhookVerifier,
    verify_hmac, verify_integration_hmac, verify_provider_signature
)

# Consent management
from .consent import (
    ConsentRecord, ConsentChannel, ConsentSource, ConsentLedger, DoNotCallList,
    record_grant, revoke, has_active_consent, history
)

# Call compliance
from .compliance import (
    CallAttempt, CallOutcome, CallingHoursPolicy, ComplianceDecision, ComplianceGate,
    DenyReason, can_call
)

# Retention
from .retention import RetentionPolicy, RetentionScheduler, RetentionSweeper, SweepReport

__all__ = [
    # Config
    "ComplianceConfig",
    "CipherSuite",
    "get_config",

    # Exceptions
    "SecurityError",
    "EncryptionError",
    "KeyNotConfiguredError",
    "UnknownKeyVersionError",
    "AuthenticationFailedError",
    "WebhookConfigurationError",
    "StoreError",
    "StoreUnavailableError",
    "ValidationError",

    # Crypto
    "EncryptedBlob",
    "EncryptionService",
    "KeyRing",
    "generate_key",
    "mask_for_display",

    # Webhooks
    "WebhookEvent",
    "WebhookVerdict",
    "WebhookRejectReason",
    "WebhookVerifier",
    "verify_hmac",
    "verify_integration_hmac",
    "verify_provider_signature",

    # Consent
    "ConsentRecord",
    "ConsentChannel",
    "ConsentSource",
    "ConsentLedger",
    "DoNotCallList",
    "record_grant",
    "revoke",
    "has_active_consent",
    "history",

    # Compliance
    "CallAttempt",
    "CallOutcome",
    "CallingHoursPolicy",
    "ComplianceDecision",
    "ComplianceGate",
    "DenyReason",
    "can_call",

    # Retention
    "RetentionPolicy",
    "RetentionScheduler",
    "RetentionSweeper",
    "SweepReport",
]
