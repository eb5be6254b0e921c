"""
Tests for webhook trust verification
"""

import base64
import hashlib
import hmac
import json
from datetime import datetime, timedelta, UTC

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from callguard.exceptions import WebhookConfigurationError
from callguard.webhooks.models import WebhookEvent, WebhookRejectReason
from callguard.webhooks.verifier import (
    WebhookVerifier,
    load_public_key,
    verify_hmac,
    verify_integration_hmac,
)

NOW = datetime(2024, 6, 3, 15, 0, tzinfo=UTC)
BODY = b'{"data": {"event_type": "call.answered", "payload": {"to": "+15551234567"}}}'


def _sign(private_key: Ed25519PrivateKey, timestamp: str, body: bytes) -> str:
    return base64.b64encode(private_key.sign(timestamp.encode() + b":" + body)).decode()


class TestProviderSignature:
    """Test Ed25519 verification with replay protection"""

    def setup_method(self):
        self.private_key = Ed25519PrivateKey.generate()
        public_b64 = base64.b64encode(
            self.private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        ).decode()
        self.verifier = WebhookVerifier(public_b64, max_skew_seconds=300)

    def _event(self, body: bytes = BODY, sent_at: datetime = NOW, **overrides) -> WebhookEvent:
        timestamp = str(int(sent_at.timestamp()))
        fields = {
            "raw_body": body,
            "signature": _sign(self.private_key, timestamp, body),
            "timestamp": timestamp,
            "received_at": NOW,
        }
        fields.update(overrides)
        return WebhookEvent(**fields)

    def test_valid_signature_accepted(self):
        verdict = self.verifier.verify_provider_signature(self._event())
        assert verdict.valid
        assert verdict.reason == WebhookRejectReason.NONE

    def test_inside_skew_window_accepted(self):
        event = self._event(sent_at=NOW - timedelta(seconds=299))
        assert self.verifier.verify_provider_signature(event)

    def test_outside_skew_window_rejected(self):
        event = self._event(sent_at=NOW - timedelta(seconds=301))
        verdict = self.verifier.verify_provider_signature(event)
        assert not verdict
        assert verdict.reason == WebhookRejectReason.STALE_TIMESTAMP

    def test_future_timestamp_rejected(self):
        event = self._event(sent_at=NOW + timedelta(seconds=301))
        verdict = self.verifier.verify_provider_signature(event)
        assert verdict.reason == WebhookRejectReason.STALE_TIMESTAMP

    def test_non_numeric_timestamp_rejected(self):
        verdict = self.verifier.verify_provider_signature(self._event(timestamp="yesterday"))
        assert verdict.reason == WebhookRejectReason.STALE_TIMESTAMP

    @pytest.mark.parametrize("missing", ["signature", "timestamp"])
    def test_missing_header_rejected(self, missing: str):
        verdict = self.verifier.verify_provider_signature(self._event(**{missing: None}))
        assert verdict.reason == WebhookRejectReason.MISSING_CREDENTIALS

    def test_unconfigured_public_key_rejects(self):
        verdict = WebhookVerifier(None).verify_provider_signature(self._event())
        assert verdict.reason == WebhookRejectReason.MISSING_CREDENTIALS

    def test_reserialized_body_fails(self):
        """Signing covers the bytes as received, not an equivalent JSON document"""
        event = self._event()
        reserialized = json.dumps(json.loads(BODY), separators=(",", ":")).encode()
        assert reserialized != BODY

        verdict = self.verifier.verify_provider_signature(event.model_copy(update={"raw_body": reserialized}))
        assert verdict.reason == WebhookRejectReason.INVALID_SIGNATURE

    def test_signature_from_other_key_rejected(self):
        other = Ed25519PrivateKey.generate()
        timestamp = str(int(NOW.timestamp()))
        event = self._event(signature=_sign(other, timestamp, BODY))
        assert self.verifier.verify_provider_signature(event).reason == WebhookRejectReason.INVALID_SIGNATURE

    def test_garbage_signature_rejected(self):
        verdict = self.verifier.verify_provider_signature(self._event(signature="not base64!"))
        assert verdict.reason == WebhookRejectReason.INVALID_SIGNATURE

    def test_from_request_reads_headers_case_insensitively(self):
        timestamp = str(int(NOW.timestamp()))
        headers = {
            "Telnyx-Signature-Ed25519": _sign(self.private_key, timestamp, BODY),
            "Telnyx-Timestamp": timestamp,
        }
        event = WebhookEvent.from_request(BODY, headers, received_at=NOW)
        assert self.verifier.verify_provider_signature(event)

    def test_naive_received_at_is_utc(self):
        event = self._event(received_at=NOW.replace(tzinfo=None))
        assert event.received_at == NOW
        assert self.verifier.verify_provider_signature(event)

    def test_invalid_public_key_is_configuration_error(self):
        with pytest.raises(WebhookConfigurationError):
            load_public_key("AAAA")


class TestIntegrationHmac:
    """Test HMAC-SHA256 verification for integrations"""

    def setup_method(self):
        self.secret = "whsec_test"
        self.payload = b'{"lead_id": 42}'
        self.signature = hmac.new(self.secret.encode(), self.payload, hashlib.sha256).hexdigest()

    def test_valid_signature(self):
        assert verify_hmac(self.payload, self.signature, self.secret)

    def test_prefixed_signature(self):
        assert verify_hmac(self.payload, "sha256=" + self.signature, self.secret)

    def test_flipped_payload_byte_fails(self):
        tampered = bytes([self.payload[0] ^ 0x01]) + self.payload[1:]
        assert not verify_hmac(tampered, self.signature, self.secret)

    def test_flipped_secret_byte_fails(self):
        wrong = chr(ord(self.secret[0]) ^ 0x01) + self.secret[1:]
        assert not verify_hmac(self.payload, self.signature, wrong)

    def test_wrong_length_signature_fails(self):
        assert not verify_hmac(self.payload, self.signature[:10], self.secret)

    def test_empty_secret_fails(self):
        assert not verify_hmac(self.payload, self.signature, "")

    def test_integration_without_secret_fails_closed(self):
        assert not verify_integration_hmac("crm", self.payload, self.signature, secrets={})

    def test_integration_with_secret(self):
        assert verify_integration_hmac("crm", self.payload, self.signature,
                                       secrets={"crm": self.secret})
