"""
Tests for the consent ledger, its storage adapters and the do-not-call list
"""

import threading
from contextlib import contextmanager
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

import callguard.consent.storage as storage_mod

from callguard.constants import ConsentDefaults
from callguard.consent.dnc import DoNotCallList
from callguard.consent.ledger import ConsentLedger
from callguard.consent.models import ConsentChannel, ConsentRecord, ConsentSource
from callguard.consent.storage import ConsentStorage, InMemoryConsentStorage
from callguard.exceptions import StoreUnavailableError, ValidationError

PHONE = "+15551234567"
# +1 555 123 4567 written with Arabic-Indic digits
ARABIC_INDIC_PHONE = "+1\u0665\u0665\u0665\u0661\u0662\u0663\u0664\u0665\u0666\u0667"


class TestConsentRecord:
    """Test consent record activity"""

    def test_active_until_expiry(self, clock):
        record = ConsentRecord(subject_phone=PHONE, channel=ConsentChannel.VOICE,
                               source=ConsentSource.WEB_FORM, granted_at=clock.now,
                               expires_at=clock.now + timedelta(days=1))
        assert record.is_active(clock.now)
        assert not record.is_active(clock.now + timedelta(days=1))

    def test_revoked_is_inactive(self, clock):
        record = ConsentRecord(subject_phone=PHONE, channel=ConsentChannel.VOICE,
                               source=ConsentSource.WEB_FORM, granted_at=clock.now,
                               revoked_at=clock.now)
        assert not record.is_active(clock.now)


class TestConsentLedger:
    """Test grant, revoke and lookup semantics"""

    def test_grant_makes_consent_active(self, ledger: ConsentLedger):
        record = ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM,
                                     proof="ip=203.0.113.7")

        assert record.subject_phone == PHONE
        assert record.proof == "ip=203.0.113.7"
        assert ledger.has_active_consent(PHONE, ConsentChannel.VOICE)
        assert not ledger.has_active_consent(PHONE, ConsentChannel.SMS)

    def test_new_grant_supersedes_previous(self, ledger: ConsentLedger, clock):
        first = ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM)
        clock.advance(minutes=5)
        second = ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.VOICE)

        records = ledger.history(PHONE)
        assert [r.id for r in records] == [first.id, second.id]
        assert records[0].revoked_at == clock.now
        assert records[1].revoked_at is None
        assert sum(r.is_active(clock.now) for r in records) == 1

    def test_revoke_then_inactive(self, ledger: ConsentLedger, clock):
        ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM)
        clock.advance(hours=1)
        ledger.revoke(PHONE, ConsentChannel.VOICE)

        assert not ledger.has_active_consent(PHONE, ConsentChannel.VOICE)
        assert ledger.history(PHONE)[0].revoked_at == clock.now

    def test_revoke_without_grant_is_noop(self, ledger: ConsentLedger):
        ledger.revoke(PHONE, ConsentChannel.VOICE)
        assert ledger.history(PHONE) == []

    def test_revoke_only_affects_channel(self, ledger: ConsentLedger):
        ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM)
        ledger.record_grant(PHONE, ConsentChannel.SMS, ConsentSource.SMS)

        ledger.revoke(PHONE, ConsentChannel.SMS)

        assert ledger.has_active_consent(PHONE, ConsentChannel.VOICE)
        assert not ledger.has_active_consent(PHONE, ConsentChannel.SMS)

    def test_default_expiry_applies(self, cipher, clock):
        ledger = ConsentLedger(InMemoryConsentStorage(), cipher=cipher,
                               default_expiry_days=30, clock=clock)
        record = ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM)

        assert record.expires_at == clock.now + timedelta(days=30)
        clock.advance(days=30)
        assert not ledger.has_active_consent(PHONE, ConsentChannel.VOICE)

    def test_explicit_expiry_overrides_default(self, cipher, clock):
        ledger = ConsentLedger(InMemoryConsentStorage(), default_expiry_days=30, clock=clock)
        expires = clock.now + timedelta(days=2)
        record = ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM,
                                     expires_at=expires)
        assert record.expires_at == expires

    def test_phone_is_normalized(self, ledger: ConsentLedger):
        ledger.record_grant("+1 (555) 123-4567", ConsentChannel.VOICE, ConsentSource.WEB_FORM)
        assert ledger.has_active_consent(PHONE, ConsentChannel.VOICE)

    def test_invalid_phone_rejected(self, ledger: ConsentLedger):
        with pytest.raises(ValidationError):
            ledger.record_grant("5551234567", ConsentChannel.VOICE, ConsentSource.WEB_FORM)

    def test_non_ascii_digits_rejected(self, ledger: ConsentLedger):
        ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM)

        with pytest.raises(ValidationError):
            ledger.revoke(ARABIC_INDIC_PHONE, ConsentChannel.VOICE)
        with pytest.raises(ValidationError):
            ledger.record_grant(ARABIC_INDIC_PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM)
        assert ledger.has_active_consent(PHONE, ConsentChannel.VOICE)

    def test_proof_encrypted_at_rest(self, ledger: ConsentLedger):
        record = ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM,
                                     proof="ua=Mozilla/5.0")

        stored = ledger.storage.consents[record.id]
        assert stored.proof != "ua=Mozilla/5.0"
        assert stored.proof.startswith("v2.")
        assert ledger.history(PHONE)[0].proof == "ua=Mozilla/5.0"

    def test_redacted_proof_is_not_decrypted(self, ledger: ConsentLedger, clock):
        ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM, proof="ip=1.2.3.4")
        ledger.revoke(PHONE, ConsentChannel.VOICE)

        assert ledger.storage.redact_proof_before(clock.advance(days=1)) == 1
        assert ledger.history(PHONE)[0].proof == ConsentDefaults.REDACTED_PROOF

    def test_concurrent_grants_leave_one_active(self, ledger: ConsentLedger):
        barrier = threading.Barrier(8)

        def grant():
            barrier.wait()
            ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM)

        threads = [threading.Thread(target=grant) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        records = ledger.history(PHONE)
        assert len(records) == 8
        assert sum(r.revoked_at is None for r in records) == 1


class TestSqlConsentStorage:
    """Test the SQLAlchemy consent storage adapter"""

    def setup_method(self):
        self.storage = ConsentStorage("sqlite://")

    def test_grant_supersede_and_history(self, cipher, clock):
        ledger = ConsentLedger(self.storage, cipher=cipher, clock=clock)
        first = ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM, proof="p1")
        clock.advance(minutes=1)
        second = ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.REFERRAL, proof="p2")

        records = ledger.history(PHONE)
        assert [r.id for r in records] == [first.id, second.id]
        assert records[0].revoked_at == clock.now
        assert [r.proof for r in records] == ["p1", "p2"]
        assert ledger.has_active_consent(PHONE, ConsentChannel.VOICE)

    def test_revoke_and_expiry(self, clock):
        ledger = ConsentLedger(self.storage, clock=clock)
        ledger.record_grant(PHONE, ConsentChannel.SMS, ConsentSource.SMS,
                            expires_at=clock.now + timedelta(hours=1))
        assert ledger.has_active_consent(PHONE, ConsentChannel.SMS)

        clock.advance(hours=2)
        assert not ledger.has_active_consent(PHONE, ConsentChannel.SMS)

        ledger.record_grant(PHONE, ConsentChannel.SMS, ConsentSource.SMS)
        ledger.revoke(PHONE, ConsentChannel.SMS)
        assert not ledger.has_active_consent(PHONE, ConsentChannel.SMS)

    def test_purge_only_removes_closed_records(self, clock):
        ledger = ConsentLedger(self.storage, clock=clock)
        ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM)
        ledger.revoke(PHONE, ConsentChannel.VOICE)
        ledger.record_grant(PHONE, ConsentChannel.SMS, ConsentSource.SMS)

        assert self.storage.purge_closed_before(clock.now + timedelta(days=1)) == 1
        remaining = ledger.history(PHONE)
        assert [r.channel for r in remaining] == [ConsentChannel.SMS]

    def test_concurrent_grants_on_file_database(self, tmp_path, clock):
        storage = ConsentStorage(f"sqlite:///{tmp_path / 'consent.db'}", conflict_retries=8)
        ledger = ConsentLedger(storage, clock=clock)
        barrier = threading.Barrier(8)
        errors = []

        def grant():
            barrier.wait()
            try:
                ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=grant) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        records = ledger.history(PHONE)
        assert len(records) == 8
        assert sum(r.revoked_at is None for r in records) == 1

    def test_persistent_write_conflict_is_store_unavailable(self, monkeypatch, clock):
        attempts = []
        real_session = storage_mod.store_session

        def conflict():
            raise IntegrityError("INSERT INTO consent_records", {}, Exception("conflict"))

        @contextmanager
        def conflicting_session(factory, operation):
            attempts.append(operation)
            with real_session(factory, operation) as session:
                session.commit = conflict
                yield session

        storage = ConsentStorage("sqlite://", conflict_retries=2)
        monkeypatch.setattr(storage_mod, "store_session", conflicting_session)
        ledger = ConsentLedger(storage, clock=clock)

        with pytest.raises(StoreUnavailableError) as exc_info:
            ledger.record_grant(PHONE, ConsentChannel.VOICE, ConsentSource.WEB_FORM)

        assert exc_info.value.details["reason"] == "write_conflict"
        assert attempts == ["record_grant", "record_grant"]


class TestDoNotCallList:
    """Test the internal do-not-call list"""

    def setup_method(self):
        self.dnc = DoNotCallList("sqlite://")

    def test_add_and_lookup(self):
        assert self.dnc.add(PHONE, reason="asked on call")
        assert self.dnc.is_listed(PHONE)
        assert not self.dnc.is_listed("+15557654321")

    def test_duplicate_add_returns_false(self):
        assert self.dnc.add(PHONE)
        assert not self.dnc.add(PHONE)

    def test_remove(self):
        self.dnc.add(PHONE)
        assert self.dnc.remove(PHONE)
        assert not self.dnc.remove(PHONE)
        assert not self.dnc.is_listed(PHONE)

    def test_non_ascii_digits_rejected(self):
        self.dnc.add(PHONE)
        with pytest.raises(ValidationError):
            self.dnc.remove(ARABIC_INDIC_PHONE)
        with pytest.raises(ValidationError):
            self.dnc.is_listed(ARABIC_INDIC_PHONE)
        assert self.dnc.is_listed(PHONE)

    def test_entries(self):
        self.dnc.add(PHONE, reason="complaint")
        entries = self.dnc.entries()
        assert [(e.phone, e.reason) for e in entries] == [(PHONE, "complaint")]
