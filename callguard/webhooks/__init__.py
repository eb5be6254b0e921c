"""
Webhook trust module for CallGuard
Provider signature verification and integration HMAC checks
"""

from .models import WebhookEvent, WebhookRejectReason, WebhookVerdict
from .verifier import (
    WebhookVerifier,
    get_webhook_verifier,
    load_public_key,
    signed_payload,
    verify_hmac,
    verify_integration_hmac,
    verify_provider_signature,
)

__all__ = [
    "WebhookEvent",
    "WebhookRejectReason",
    "WebhookVerdict",
    "WebhookVerifier",
    "get_webhook_verifier",
    "load_public_key",
    "signed_payload",
    "verify_hmac",
    "verify_integration_hmac",
    "verify_provider_signature",
]
