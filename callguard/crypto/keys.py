"""
Key management utilities for CallGuard
Versioned key ring loading and copy-on-rotate snapshots
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional

import structlog

from ..config import CipherSuite, ComplianceConfig
from ..constants import EncryptionDefaults
from ..exceptions import InvalidKeyError, KeyNotConfiguredError, UnknownKeyVersionError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class KeyMaterial:
    """A single key version: raw key bytes and the AEAD suite bound to it"""
    version: str
    suite: CipherSuite
    key: bytes

    def __repr__(self) -> str:
        return f"KeyMaterial(version={self.version!r}, suite={self.suite.value!r})"


class KeyRing:
    """
    Immutable snapshot of configured key versions.

    Every version stays available for decryption; only ``current_version``
    is used for new encryptions. Rotation builds a new ring with
    ``with_new_current`` instead of editing this one.
    """

    def __init__(self, keys: Mapping[str, KeyMaterial], current_version: Optional[str]):
        if current_version is not None and current_version not in keys:
            raise KeyNotConfiguredError(current_version)
        self._keys: Mapping[str, KeyMaterial] = MappingProxyType(dict(keys))
        self._current_version = current_version

    @property
    def current_version(self) -> Optional[str]:
        return self._current_version

    @property
    def versions(self) -> tuple:
        return tuple(self._keys)

    def __contains__(self, version: object) -> bool:
        return version in self._keys

    def current(self) -> KeyMaterial:
        """Key used for new encryptions"""
        if self._current_version is None:
            raise KeyNotConfiguredError()
        return self._keys[self._current_version]

    def for_write(self, version: Optional[str] = None) -> KeyMaterial:
        """Resolve the key for an encryption, defaulting to the current version"""
        if version is None:
            return self.current()
        material = self._keys.get(version)
        if material is None:
            raise KeyNotConfiguredError(version)
        return material

    def for_read(self, version: str) -> KeyMaterial:
        """Resolve the key for a decryption"""
        material = self._keys.get(version)
        if material is None:
            raise UnknownKeyVersionError(version)
        return material

    def with_new_current(self, material: KeyMaterial) -> "KeyRing":
        """Return a new ring that adds ``material`` and makes it current"""
        keys: Dict[str, KeyMaterial] = dict(self._keys)
        keys[material.version] = material
        return KeyRing(keys, material.version)

    def without_version(self, version: str) -> "KeyRing":
        """Return a new ring with a retired version removed"""
        if version == self._current_version:
            raise InvalidKeyError("Cannot retire the current key version")
        keys = {v: m for v, m in self._keys.items() if v != version}
        return KeyRing(keys, self._current_version)


def parse_key(version: str, key_hex: str, suite: CipherSuite = CipherSuite.AES_256_GCM) -> KeyMaterial:
    """Decode hex key material and check its length"""
    try:
        key = bytes.fromhex(key_hex.strip())
    except ValueError:
        raise InvalidKeyError(f"Key {version} is not valid hex", reason="format")

    if len(key) != EncryptionDefaults.KEY_SIZE_BYTES:
        raise InvalidKeyError(
            f"Key {version} must be {EncryptionDefaults.KEY_SIZE_BYTES} bytes",
            reason="length"
        )
    return KeyMaterial(version=version, suite=suite, key=key)


def load_keyring(config: ComplianceConfig) -> KeyRing:
    """
    Build the key ring from configuration.

    Raises:
        KeyNotConfiguredError: if no keys are configured or the current
            version is missing from the configured keys
        InvalidKeyError: if any key is malformed
    """
    if not config.encryption_keys:
        logger.error("No encryption keys configured")
        raise KeyNotConfiguredError()

    keys = {
        version: parse_key(
            version,
            key_hex,
            config.encryption_key_suites.get(version, CipherSuite.AES_256_GCM),
        )
        for version, key_hex in config.encryption_keys.items()
    }

    current = config.encryption_current_key_version
    if current is None:
        if len(keys) != 1:
            raise KeyNotConfiguredError()
        current = next(iter(keys))

    ring = KeyRing(keys, current)
    logger.info("Loaded key ring", versions=list(ring.versions), current_version=current)
    return ring
