"""Shared fixtures for the CallGuard test suite."""

import os

# Settings are read at import time by callguard.main
os.environ.setdefault("CALLGUARD_CONSENT_EXPIRY_DAYS", "none")
os.environ.setdefault("CALLGUARD_DATABASE_URL", "sqlite://")
os.environ.setdefault("CALLGUARD_ENCRYPTION_KEYS", '{"v1": "' + "11" * 32 + '"}')
os.environ.setdefault("CALLGUARD_RETENTION_SWEEP_INTERVAL_SECONDS", "0")

from datetime import datetime, timedelta, UTC

import pytest

from callguard.config import CipherSuite
from callguard.consent.ledger import ConsentLedger
from callguard.consent.storage import InMemoryConsentStorage
from callguard.crypto.encrypt import EncryptionService, generate_key
from callguard.crypto.keys import KeyMaterial, KeyRing


class ManualClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2024, 6, 3, 15, 0, tzinfo=UTC))


@pytest.fixture
def keyring() -> KeyRing:
    return KeyRing(
        {
            "v1": KeyMaterial("v1", CipherSuite.AES_256_GCM, generate_key()),
            "v2": KeyMaterial("v2", CipherSuite.CHACHA20_POLY1305, generate_key()),
        },
        current_version="v2",
    )


@pytest.fixture
def cipher(keyring: KeyRing) -> EncryptionService:
    return EncryptionService(keyring)


@pytest.fixture
def ledger(cipher: EncryptionService, clock: ManualClock) -> ConsentLedger:
    return ConsentLedger(InMemoryConsentStorage(), cipher=cipher, clock=clock)
