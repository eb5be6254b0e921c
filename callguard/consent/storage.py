"""
Consent storage adapters for CallGuard
Database adapters for consent record persistence
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional

import structlog
from sqlalchemy import Column, DateTime, Index, String, Text, and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..constants import ConsentDefaults
from ..database import Base, as_utc, create_store_engine, init_schema, store_session
from ..exceptions import StoreUnavailableError
from .models import ConsentChannel, ConsentRecord, ConsentSource

logger = structlog.get_logger(__name__)


class ConsentRecordDB(Base):
    """SQLAlchemy model for consent records"""
    __tablename__ = "consent_records"

    id = Column(String, primary_key=True)
    subject_phone = Column(String(16), nullable=False, index=True)
    channel = Column(String, nullable=False)
    source = Column(String, nullable=False)
    proof = Column(Text)

    granted_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True))


# At most one open (unrevoked) record per phone and channel
Index(
    "uq_consent_open_per_channel",
    ConsentRecordDB.subject_phone,
    ConsentRecordDB.channel,
    unique=True,
    postgresql_where=ConsentRecordDB.revoked_at.is_(None),
    sqlite_where=ConsentRecordDB.revoked_at.is_(None),
)


def _open_for(phone: str, channel: ConsentChannel):
    return and_(
        ConsentRecordDB.subject_phone == phone,
        ConsentRecordDB.channel == channel.value,
        ConsentRecordDB.revoked_at.is_(None),
    )


def _active_for(phone: str, channel: ConsentChannel, now: datetime):
    return and_(
        _open_for(phone, channel),
        or_(ConsentRecordDB.expires_at.is_(None), ConsentRecordDB.expires_at > now),
    )


def _closed_before(cutoff: datetime):
    return or_(
        and_(ConsentRecordDB.revoked_at.is_not(None), ConsentRecordDB.revoked_at < cutoff),
        and_(
            ConsentRecordDB.revoked_at.is_(None),
            ConsentRecordDB.expires_at.is_not(None),
            ConsentRecordDB.expires_at < cutoff,
        ),
    )


class ConsentStorage:
    """Storage adapter for consent records"""

    def __init__(self, database_url: Optional[str] = None,
                 conflict_retries: int = ConsentDefaults.GRANT_CONFLICT_RETRIES):
        # Default to SQLite for development
        self.database_url = database_url or "sqlite:///callguard.db"
        self.engine = create_store_engine(self.database_url)
        self.SessionLocal = sessionmaker(bind=self.engine)
        self.conflict_retries = conflict_retries

        init_schema(self.engine)

    def _to_db_model(self, consent: ConsentRecord) -> ConsentRecordDB:
        """Convert ConsentRecord to database model"""
        return ConsentRecordDB(
            id=consent.id,
            subject_phone=consent.subject_phone,
            channel=consent.channel.value,
            source=consent.source.value,
            proof=consent.proof,
            granted_at=as_utc(consent.granted_at),
            revoked_at=as_utc(consent.revoked_at),
            expires_at=as_utc(consent.expires_at),
        )

    def _from_db_model(self, db_consent: ConsentRecordDB) -> ConsentRecord:
        """Convert database model to ConsentRecord"""
        return ConsentRecord(
            id=db_consent.id,
            subject_phone=db_consent.subject_phone,
            channel=ConsentChannel(db_consent.channel),
            source=ConsentSource(db_consent.source),
            proof=db_consent.proof,
            granted_at=as_utc(db_consent.granted_at),
            revoked_at=as_utc(db_consent.revoked_at),
            expires_at=as_utc(db_consent.expires_at),
        )

    def supersede_and_insert(self, consent: ConsentRecord, now: datetime) -> List[str]:
        """
        Close any open record for the consent's phone and channel, then insert
        it, in one transaction. Returns the ids of superseded records.

        A concurrent grant for the same key trips the open-record unique index;
        the transaction is then rolled back and retried against fresh state.
        """
        now = as_utc(now)
        condition = _open_for(consent.subject_phone, consent.channel)

        for attempt in range(1, self.conflict_retries + 1):
            try:
                with store_session(self.SessionLocal, "record_grant") as session:
                    superseded = list(session.execute(
                        select(ConsentRecordDB.id).where(condition).with_for_update()
                    ).scalars())
                    if superseded:
                        session.execute(
                            update(ConsentRecordDB)
                            .where(ConsentRecordDB.id.in_(superseded))
                            .values(revoked_at=now)
                        )
                    session.add(self._to_db_model(consent))
                    session.commit()

                logger.info("Stored consent record", consent_id=consent.id,
                            channel=consent.channel.value, superseded=len(superseded))
                return superseded

            except IntegrityError:
                logger.warning("Concurrent consent grant conflict, retrying",
                               consent_id=consent.id, attempt=attempt)

        raise StoreUnavailableError("record_grant", reason="write_conflict")

    def revoke_active(self, phone: str, channel: ConsentChannel, now: datetime) -> Optional[ConsentRecord]:
        """Set revoked_at on the active record, if any, and return it"""
        now = as_utc(now)
        with store_session(self.SessionLocal, "revoke") as session:
            db_consent = session.execute(
                select(ConsentRecordDB).where(_active_for(phone, channel, now)).with_for_update()
            ).scalars().first()
            if db_consent is None:
                return None

            db_consent.revoked_at = now
            session.commit()
            session.refresh(db_consent)
            return self._from_db_model(db_consent)

    def get_active(self, phone: str, channel: ConsentChannel, now: datetime) -> Optional[ConsentRecord]:
        """Point lookup of the active record for a phone and channel"""
        with store_session(self.SessionLocal, "has_active_consent") as session:
            db_consent = session.execute(
                select(ConsentRecordDB).where(_active_for(phone, channel, as_utc(now)))
            ).scalars().first()
            return self._from_db_model(db_consent) if db_consent else None

    def list_for_phone(self, phone: str) -> List[ConsentRecord]:
        """All records for a phone, oldest grant first"""
        with store_session(self.SessionLocal, "history") as session:
            rows = session.execute(
                select(ConsentRecordDB)
                .where(ConsentRecordDB.subject_phone == phone)
                .order_by(ConsentRecordDB.granted_at.asc(), ConsentRecordDB.id.asc())
            ).scalars().all()
            return [self._from_db_model(row) for row in rows]

    def purge_closed_before(self, cutoff: datetime) -> int:
        """Delete revoked or expired records that closed before ``cutoff``"""
        with store_session(self.SessionLocal, "purge_consent") as session:
            result = session.execute(delete(ConsentRecordDB).where(_closed_before(as_utc(cutoff))))
            session.commit()
            return result.rowcount

    def redact_proof_before(self, cutoff: datetime) -> int:
        """Replace proof payloads of records that closed before ``cutoff``"""
        with store_session(self.SessionLocal, "redact_consent_proof") as session:
            result = session.execute(
                update(ConsentRecordDB)
                .where(
                    _closed_before(as_utc(cutoff)),
                    ConsentRecordDB.proof.is_not(None),
                    ConsentRecordDB.proof != ConsentDefaults.REDACTED_PROOF,
                )
                .values(proof=ConsentDefaults.REDACTED_PROOF)
            )
            session.commit()
            return result.rowcount


def _closed_at(consent: ConsentRecord) -> Optional[datetime]:
    if consent.revoked_at is not None:
        return consent.revoked_at
    return consent.expires_at


class InMemoryConsentStorage(ConsentStorage):
    """In-memory storage for testing"""

    def __init__(self):
        self.consents: Dict[str, ConsentRecord] = {}
        self._lock = threading.Lock()

    def _open(self, phone: str, channel: ConsentChannel) -> List[ConsentRecord]:
        return [
            c for c in self.consents.values()
            if c.subject_phone == phone and c.channel == channel and c.revoked_at is None
        ]

    def supersede_and_insert(self, consent: ConsentRecord, now: datetime) -> List[str]:
        with self._lock:
            superseded = [c.id for c in self._open(consent.subject_phone, consent.channel)]
            for consent_id in superseded:
                self.consents[consent_id] = self.consents[consent_id].model_copy(update={"revoked_at": now})
            self.consents[consent.id] = consent.model_copy()
            return superseded

    def revoke_active(self, phone: str, channel: ConsentChannel, now: datetime) -> Optional[ConsentRecord]:
        with self._lock:
            for consent in self._open(phone, channel):
                if consent.is_active(now):
                    revoked = consent.model_copy(update={"revoked_at": now})
                    self.consents[consent.id] = revoked
                    return revoked.model_copy()
            return None

    def get_active(self, phone: str, channel: ConsentChannel, now: datetime) -> Optional[ConsentRecord]:
        with self._lock:
            for consent in self._open(phone, channel):
                if consent.is_active(now):
                    return consent.model_copy()
            return None

    def list_for_phone(self, phone: str) -> List[ConsentRecord]:
        with self._lock:
            records = [c.model_copy() for c in self.consents.values() if c.subject_phone == phone]
        return sorted(records, key=lambda c: (c.granted_at, c.id))

    def purge_closed_before(self, cutoff: datetime) -> int:
        with self._lock:
            doomed = [
                c.id for c in self.consents.values()
                if (closed := _closed_at(c)) is not None and closed < cutoff
            ]
            for consent_id in doomed:
                del self.consents[consent_id]
            return len(doomed)

    def redact_proof_before(self, cutoff: datetime) -> int:
        with self._lock:
            count = 0
            for consent_id, c in list(self.consents.items()):
                closed = _closed_at(c)
                if (closed is not None and closed < cutoff and c.proof is not None
                        and c.proof != ConsentDefaults.REDACTED_PROOF):
                    self.consents[consent_id] = c.model_copy(update={"proof": ConsentDefaults.REDACTED_PROOF})
                    count += 1
            return count
