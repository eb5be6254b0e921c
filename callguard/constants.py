"""
Constants for the CallGuard compliance engine

Centralized values for webhook headers, cryptographic parameters,
calling-hours defaults, retention categories and audit event types.
"""

from typing import Final

# =============================================================================
# SERVICE IDENTIFICATION
# =============================================================================

SERVICE_NAME: Final[str] = "callguard"
SERVICE_VERSION: Final[str] = "0.1.0"

# =============================================================================
# WEBHOOK TRUST
# =============================================================================

class WebhookHeaders:
    """Inbound provider webhook header names (lowercase)"""
    TELNYX_SIGNATURE: Final[str] = "telnyx-signature-ed25519"
    TELNYX_TIMESTAMP: Final[str] = "telnyx-timestamp"
    INTEGRATION_SIGNATURE: Final[str] = "x-callguard-signature"


class WebhookDefaults:
    """Webhook verification parameters"""
    MAX_SKEW_SECONDS: Final[int] = 300
    SIGNED_PAYLOAD_SEPARATOR: Final[bytes] = b":"
    HMAC_SIGNATURE_PREFIX: Final[str] = "sha256="


# =============================================================================
# ENCRYPTION CONFIGURATION
# =============================================================================

class EncryptionDefaults:
    """AEAD parameters shared by the supported cipher suites"""
    KEY_SIZE_BYTES: Final[int] = 32
    NONCE_SIZE_BYTES: Final[int] = 12
    TAG_SIZE_BYTES: Final[int] = 16
    TOKEN_SEPARATOR: Final[str] = "."

    MASK_CHAR: Final[str] = "*"
    MASK_SENTINEL: Final[str] = "***"
    VISIBLE_SUFFIX_LEN: Final[int] = 4


# =============================================================================
# CONSENT & CALLING
# =============================================================================

class ConsentDefaults:
    """Consent ledger parameters"""
    GRANT_CONFLICT_RETRIES: Final[int] = 3
    REDACTED_PROOF: Final[str] = "[REDACTED]"


class CallingHoursDefaults:
    """Federal TCPA calling window in the recipient's local time"""
    START_HOUR: Final[int] = 8
    END_HOUR: Final[int] = 21


# =============================================================================
# RETENTION
# =============================================================================

class RetentionCategories:
    """Data categories subject to retention sweeps"""
    CALLS: Final[str] = "calls"
    RECORDINGS: Final[str] = "recordings"
    LOGS: Final[str] = "logs"
    CONSENT: Final[str] = "consent"

    # Not a category of its own: proof payload redaction inside consent records
    CONSENT_PROOF: Final[str] = "consent_proof"


class RetentionDefaults:
    """Default retention windows in days (None is permanent)"""
    CALLS_DAYS: Final[int] = 365
    RECORDINGS_DAYS: Final[int] = 90
    LOGS_DAYS: Final[int] = 180


# =============================================================================
# AUDIT EVENT TYPES
# =============================================================================

class AuditEventTypes:
    """Audit event type identifiers"""
    CONSENT_GRANTED: Final[str] = "consent_granted"
    CONSENT_REVOKED: Final[str] = "consent_revoked"
    CONSENT_SUPERSEDED: Final[str] = "consent_superseded"

    CALL_ALLOWED: Final[str] = "call_allowed"
    CALL_DENIED: Final[str] = "call_denied"

    WEBHOOK_REJECTED: Final[str] = "webhook_rejected"
    KEY_ROTATION: Final[str] = "key_rotation"

    RETENTION_SWEEP: Final[str] = "retention_sweep"
    DNC_ADDED: Final[str] = "dnc_added"
    DNC_REMOVED: Final[str] = "dnc_removed"


# =============================================================================
# ERROR CODES
# =============================================================================

class ErrorCodes:
    """Standardized error codes for the compliance engine"""
    UNKNOWN_ERROR: Final[str] = "UNKNOWN_ERROR"
    VALIDATION_ERROR: Final[str] = "VALIDATION_ERROR"

    # Encryption errors
    ENCRYPTION_ERROR: Final[str] = "ENCRYPTION_ERROR"
    KEY_NOT_CONFIGURED: Final[str] = "KEY_NOT_CONFIGURED"
    UNKNOWN_KEY_VERSION: Final[str] = "UNKNOWN_KEY_VERSION"
    AUTHENTICATION_FAILED: Final[str] = "AUTHENTICATION_FAILED"
    INVALID_KEY: Final[str] = "INVALID_KEY"

    # Webhook errors
    WEBHOOK_CONFIGURATION: Final[str] = "WEBHOOK_CONFIGURATION"

    # Store errors
    STORE_ERROR: Final[str] = "STORE_ERROR"
    STORE_UNAVAILABLE: Final[str] = "STORE_UNAVAILABLE"
