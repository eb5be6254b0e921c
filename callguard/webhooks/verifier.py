"""
Webhook trust verification for CallGuard
Ed25519 provider signatures with replay protection, and HMAC-SHA256 for integrations
"""

import base64
import binascii
import hashlib
import hmac
from typing import Mapping, Optional, Union

import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from ..audit import AuditSeverity, create_security_event, emit
from ..config import get_config
from ..constants import AuditEventTypes, WebhookDefaults
from ..exceptions import WebhookConfigurationError
from .models import WebhookEvent, WebhookRejectReason, WebhookVerdict

logger = structlog.get_logger(__name__)


def load_public_key(public_key_b64: str) -> Ed25519PublicKey:
    """Decode a base64 raw Ed25519 public key"""
    try:
        raw = base64.b64decode(public_key_b64, validate=True)
        return Ed25519PublicKey.from_public_bytes(raw)
    except (binascii.Error, ValueError) as e:
        raise WebhookConfigurationError(f"Invalid Ed25519 public key: {e}")


def signed_payload(timestamp: str, raw_body: bytes) -> bytes:
    """Canonical signed bytes: timestamp, separator, then the body exactly as received"""
    return timestamp.encode("utf-8") + WebhookDefaults.SIGNED_PAYLOAD_SEPARATOR + raw_body


class WebhookVerifier:
    """Stateless per-request verifier for provider webhooks"""

    def __init__(self, public_key: Optional[Union[str, Ed25519PublicKey]] = None,
                 max_skew_seconds: int = WebhookDefaults.MAX_SKEW_SECONDS):
        if isinstance(public_key, str):
            public_key = load_public_key(public_key)
        self.public_key = public_key
        self.max_skew_seconds = max_skew_seconds

    def verify_provider_signature(self, event: WebhookEvent) -> WebhookVerdict:
        """
        Verify an inbound provider webhook.

        The freshness check runs before the signature check. The signature
        covers ``timestamp:raw_body`` over the original request bytes.
        """
        if not event.signature or not event.timestamp or self.public_key is None:
            return self._reject(WebhookRejectReason.MISSING_CREDENTIALS)

        try:
            sent_at = int(event.timestamp)
        except ValueError:
            return self._reject(WebhookRejectReason.STALE_TIMESTAMP, timestamp=event.timestamp)

        age = event.received_at.timestamp() - sent_at
        if abs(age) > self.max_skew_seconds:
            return self._reject(WebhookRejectReason.STALE_TIMESTAMP, age_seconds=int(age))

        try:
            signature = base64.b64decode(event.signature, validate=True)
            self.public_key.verify(signature, signed_payload(event.timestamp, event.raw_body))
        except (binascii.Error, ValueError, InvalidSignature):
            return self._reject(WebhookRejectReason.INVALID_SIGNATURE)

        return WebhookVerdict.accept()

    def _reject(self, reason: WebhookRejectReason, **details) -> WebhookVerdict:
        emit(create_security_event(
            AuditEventTypes.WEBHOOK_REJECTED,
            "Webhook verification failed",
            severity=AuditSeverity.WARNING,
            details={"reason": reason.value, **details},
        ))
        return WebhookVerdict.reject(reason)


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def verify_hmac(payload: Union[str, bytes], signature: Union[str, bytes],
                secret: Union[str, bytes]) -> bool:
    """
    Verify a hex HMAC-SHA256 signature over ``payload``.

    Both digests are hashed to a fixed length before the constant-time
    comparison so a length mismatch cannot short-circuit it.
    """
    if not signature or not secret:
        return False

    supplied = _as_bytes(signature).strip()
    prefix = WebhookDefaults.HMAC_SIGNATURE_PREFIX.encode("ascii")
    if supplied.startswith(prefix):
        supplied = supplied[len(prefix):]

    expected = hmac.new(_as_bytes(secret), _as_bytes(payload), hashlib.sha256).hexdigest()
    return hmac.compare_digest(
        hashlib.sha256(expected.encode("ascii")).digest(),
        hashlib.sha256(supplied.lower()).digest(),
    )


def verify_integration_hmac(integration: str, payload: Union[str, bytes],
                            signature: Union[str, bytes],
                            secrets: Optional[Mapping[str, str]] = None) -> bool:
    """Verify an integration webhook; fails closed when no secret is configured"""
    secrets = get_config().hmac_secrets if secrets is None else secrets
    secret = secrets.get(integration)
    if not secret:
        logger.error("HMAC secret not configured - rejecting webhook", integration=integration)
        return False

    valid = verify_hmac(payload, signature, secret)
    if not valid:
        logger.warning("Integration webhook signature mismatch", integration=integration)
    return valid


# Global verifier instance
_verifier: Optional[WebhookVerifier] = None


def get_webhook_verifier() -> WebhookVerifier:
    """Get the global webhook verifier, built from configuration on first use"""
    global _verifier
    if _verifier is None:
        config = get_config()
        _verifier = WebhookVerifier(config.telnyx_public_key, config.webhook_max_skew_seconds)
    return _verifier


def verify_provider_signature(event: WebhookEvent) -> WebhookVerdict:
    """Verify an inbound provider webhook with the global verifier"""
    return get_webhook_verifier().verify_provider_signature(event)
