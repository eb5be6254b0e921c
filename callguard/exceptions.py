"""
Custom Exceptions for the CallGuard compliance engine

Provides a unified exception hierarchy for encryption, webhook trust
configuration, store access and input validation. Expected negative
outcomes (bad signature, missing consent, outside calling hours) are
returned as verdicts and never raised.
"""

from typing import Optional, Dict, Any

from .constants import ErrorCodes


class SecurityError(Exception):
    """
    Base exception for all compliance engine errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCodes.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        result: Dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# ENCRYPTION ERRORS
# =============================================================================

class EncryptionError(SecurityError):
    """Base exception for encryption-related errors"""

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCodes.ENCRYPTION_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class KeyNotConfiguredError(EncryptionError):
    """Raised when no key is configured for the write key version"""

    def __init__(self, key_version: Optional[str] = None):
        details: Dict[str, Any] = {}
        if key_version:
            details["key_version"] = key_version
        super().__init__(
            message="No encryption key configured for writing",
            error_code=ErrorCodes.KEY_NOT_CONFIGURED,
            details=details
        )


class UnknownKeyVersionError(EncryptionError):
    """Raised when a blob references a key version that is not configured"""

    def __init__(self, key_version: str):
        super().__init__(
            message=f"Unknown key version: {key_version}",
            error_code=ErrorCodes.UNKNOWN_KEY_VERSION,
            details={"key_version": key_version}
        )


class AuthenticationFailedError(EncryptionError):
    """Raised when the AEAD authentication tag does not verify"""

    def __init__(self, key_version: Optional[str] = None):
        details: Dict[str, Any] = {}
        if key_version:
            details["key_version"] = key_version
        super().__init__(
            message="Authentication tag verification failed",
            error_code=ErrorCodes.AUTHENTICATION_FAILED,
            details=details
        )


class InvalidKeyError(EncryptionError):
    """Raised when configured key material is malformed"""

    def __init__(
        self,
        message: str = "Invalid encryption key",
        reason: Optional[str] = None
    ):
        details: Dict[str, Any] = {}
        if reason:
            details["reason"] = reason
        super().__init__(message, ErrorCodes.INVALID_KEY, details)


# =============================================================================
# WEBHOOK ERRORS
# =============================================================================

class WebhookConfigurationError(SecurityError):
    """Raised when the configured webhook public key cannot be loaded"""

    def __init__(self, reason: str):
        super().__init__(
            message="Webhook verifier misconfigured",
            error_code=ErrorCodes.WEBHOOK_CONFIGURATION,
            details={"reason": reason}
        )


# =============================================================================
# STORE ERRORS
# =============================================================================

class StoreError(SecurityError):
    """Base exception for persistence errors"""

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCodes.STORE_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class StoreUnavailableError(StoreError):
    """Raised when the backing store cannot be reached; callers own retries"""

    def __init__(self, operation: str, reason: Optional[str] = None):
        details: Dict[str, Any] = {"operation": operation}
        if reason:
            details["reason"] = reason
        super().__init__(
            message=f"Store unavailable during {operation}",
            error_code=ErrorCodes.STORE_UNAVAILABLE,
            details=details
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class ValidationError(SecurityError):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, ErrorCodes.VALIDATION_ERROR, details)
