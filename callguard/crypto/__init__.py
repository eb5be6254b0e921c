"""
Cryptographic utilities for CallGuard
Field encryption, key rings and display masking
"""

from .encrypt import (
    EncryptedBlob,
    EncryptionService,
    generate_key,
    get_encryption_service,
    mask_for_display,
)
from .keys import KeyMaterial, KeyRing, load_keyring, parse_key

__all__ = [
    "EncryptedBlob",
    "EncryptionService",
    "generate_key",
    "get_encryption_service",
    "mask_for_display",
    "KeyMaterial",
    "KeyRing",
    "load_keyring",
    "parse_key",
]
