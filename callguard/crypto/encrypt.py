"""
Encryption utilities for CallGuard
Versioned AEAD encryption of PII fields and masking for display
"""

import base64
import os
import threading
from typing import Optional, Union

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305
from pydantic import BaseModel

from ..config import CipherSuite, get_config
from ..constants import AuditEventTypes, EncryptionDefaults
from ..exceptions import AuthenticationFailedError, ValidationError
from .keys import KeyMaterial, KeyRing, load_keyring

logger = structlog.get_logger(__name__)


def generate_key() -> bytes:
    """Generate a new 256-bit key usable by every supported suite"""
    return os.urandom(EncryptionDefaults.KEY_SIZE_BYTES)


def _cipher(material: KeyMaterial) -> Union[AESGCM, ChaCha20Poly1305]:
    if material.suite == CipherSuite.CHACHA20_POLY1305:
        return ChaCha20Poly1305(material.key)
    return AESGCM(material.key)


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _unb64(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


class EncryptedBlob(BaseModel):
    """Ciphertext with its nonce, authentication tag and key version"""
    ciphertext: bytes
    nonce: bytes
    auth_tag: bytes
    key_version: str

    model_config = {"frozen": True}

    def to_token(self) -> str:
        """Serialize to a compact string for storage columns"""
        sep = EncryptionDefaults.TOKEN_SEPARATOR
        return sep.join([
            self.key_version,
            _b64(self.nonce),
            _b64(self.ciphertext),
            _b64(self.auth_tag),
        ])

    @classmethod
    def from_token(cls, token: str) -> "EncryptedBlob":
        parts = token.split(EncryptionDefaults.TOKEN_SEPARATOR)
        if len(parts) != 4:
            raise ValidationError("Malformed encrypted token", field="token")
        key_version, nonce, ciphertext, auth_tag = parts
        try:
            return cls(
                key_version=key_version,
                nonce=_unb64(nonce),
                ciphertext=_unb64(ciphertext),
                auth_tag=_unb64(auth_tag),
            )
        except ValueError:
            raise ValidationError("Malformed encrypted token", field="token")


class EncryptionService:
    """
    Field encryption over a versioned key ring.

    The ring reference is the only mutable state; ``rotate`` swaps it for a
    new snapshot so concurrent readers always see a complete key set.
    """

    def __init__(self, keyring: KeyRing):
        self._keyring = keyring
        self._rotate_lock = threading.Lock()

    @property
    def keyring(self) -> KeyRing:
        return self._keyring

    def rotate(self, keyring: KeyRing) -> None:
        """Replace the key ring snapshot"""
        with self._rotate_lock:
            previous = self._keyring.current_version
            self._keyring = keyring
        logger.info(
            "Encryption key ring rotated",
            event_type=AuditEventTypes.KEY_ROTATION,
            previous_version=previous,
            current_version=keyring.current_version,
        )

    def encrypt(
        self,
        plaintext: Union[bytes, str],
        key_version: Optional[str] = None,
        associated_data: Optional[bytes] = None,
    ) -> EncryptedBlob:
        """
        Encrypt with a fresh random nonce.

        Args:
            plaintext: Data to encrypt; strings are UTF-8 encoded
            key_version: Key version to use, the ring's current version if omitted
            associated_data: Optional data bound to the ciphertext (e.g. field name)

        Raises:
            KeyNotConfiguredError: no key exists for the write version
        """
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")

        material = self._keyring.for_write(key_version)
        nonce = os.urandom(EncryptionDefaults.NONCE_SIZE_BYTES)
        sealed = _cipher(material).encrypt(nonce, plaintext, associated_data)

        tag_size = EncryptionDefaults.TAG_SIZE_BYTES
        return EncryptedBlob(
            ciphertext=sealed[:-tag_size],
            nonce=nonce,
            auth_tag=sealed[-tag_size:],
            key_version=material.version,
        )

    def decrypt(self, blob: EncryptedBlob, associated_data: Optional[bytes] = None) -> bytes:
        """
        Decrypt and authenticate a blob.

        Raises:
            UnknownKeyVersionError: the blob's key version is not configured
            AuthenticationFailedError: tampered data, wrong key or wrong associated data
        """
        material = self._keyring.for_read(blob.key_version)

        if (len(blob.nonce) != EncryptionDefaults.NONCE_SIZE_BYTES
                or len(blob.auth_tag) != EncryptionDefaults.TAG_SIZE_BYTES):
            logger.warning("Rejected blob with malformed nonce or tag", key_version=blob.key_version)
            raise AuthenticationFailedError(blob.key_version)

        try:
            return _cipher(material).decrypt(
                blob.nonce, blob.ciphertext + blob.auth_tag, associated_data
            )
        except InvalidTag:
            logger.warning("Decryption failed - invalid authentication tag", key_version=blob.key_version)
            raise AuthenticationFailedError(blob.key_version)

    def encrypt_field(self, field_name: str, value: str) -> str:
        """Encrypt a field value bound to its name, returning a storage token"""
        return self.encrypt(value, associated_data=field_name.encode("utf-8")).to_token()

    def decrypt_field(self, field_name: str, token: str) -> str:
        """Decrypt a storage token produced by ``encrypt_field``"""
        blob = EncryptedBlob.from_token(token)
        return self.decrypt(blob, associated_data=field_name.encode("utf-8")).decode("utf-8")

    def reencrypt(self, blob: EncryptedBlob, associated_data: Optional[bytes] = None) -> EncryptedBlob:
        """Move a blob to the current key version"""
        if blob.key_version == self._keyring.current_version:
            return blob
        return self.encrypt(self.decrypt(blob, associated_data), associated_data=associated_data)


def mask_for_display(
    value: str,
    visible_suffix_len: int = EncryptionDefaults.VISIBLE_SUFFIX_LEN,
    mask_char: str = EncryptionDefaults.MASK_CHAR,
) -> str:
    """
    Mask a value for logs and display, keeping only a visible suffix.

    Values no longer than the suffix are replaced by a fixed sentinel so
    that short inputs are never shown in full.
    """
    if not value or len(value) <= visible_suffix_len:
        return EncryptionDefaults.MASK_SENTINEL
    if visible_suffix_len <= 0:
        return mask_char * len(value)
    return mask_char * (len(value) - visible_suffix_len) + value[-visible_suffix_len:]


# Global encryption service instance
_encryption_service: Optional[EncryptionService] = None


def get_encryption_service() -> EncryptionService:
    """Get the global encryption service, loading the key ring on first use"""
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = EncryptionService(load_keyring(get_config()))
    return _encryption_service
