"""
Call-attempt audit trail for CallGuard
Append-only records of every compliance gate decision
"""

import threading
from datetime import datetime, UTC
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import Column, DateTime, String, delete, select
from sqlalchemy.orm import sessionmaker

from ..database import Base, as_utc, create_store_engine, init_schema, store_session
from ..utils.ids import generate_call_attempt_id


class CallOutcome(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"


class DenyReason(str, Enum):
    """Why the gate denied a call"""
    OUTSIDE_HOURS = "outside_hours"
    DO_NOT_CALL = "do_not_call"
    NO_CONSENT = "no_consent"
    CONSENT_LOOKUP_FAILED = "consent_lookup_failed"
    NONE = "none"


class CallAttempt(BaseModel):
    """Write-once audit record of a gate decision"""
    id: str = Field(default_factory=generate_call_attempt_id)
    subject_phone: str
    timestamp_local: datetime = Field(..., description="Recipient wall-clock time, naive")
    timezone: str
    outcome: CallOutcome
    deny_reason: DenyReason = DenyReason.NONE
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = {"frozen": True}


class CallAttemptDB(Base):
    """SQLAlchemy model for call attempt audit records"""
    __tablename__ = "call_attempts"

    id = Column(String, primary_key=True)
    subject_phone = Column(String(16), nullable=False, index=True)
    timestamp_local = Column(DateTime, nullable=False)
    timezone = Column(String, nullable=False)
    outcome = Column(String, nullable=False)
    deny_reason = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)


class CallAttemptStorage:
    """Append-only storage for call attempts; no update path exists"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or "sqlite:///callguard.db"
        self.engine = create_store_engine(self.database_url)
        self.SessionLocal = sessionmaker(bind=self.engine)
        init_schema(self.engine)

    def append(self, attempt: CallAttempt) -> None:
        with store_session(self.SessionLocal, "append_call_attempt") as session:
            session.add(CallAttemptDB(
                id=attempt.id,
                subject_phone=attempt.subject_phone,
                timestamp_local=attempt.timestamp_local.replace(tzinfo=None),
                timezone=attempt.timezone,
                outcome=attempt.outcome.value,
                deny_reason=attempt.deny_reason.value,
                created_at=as_utc(attempt.created_at),
            ))
            session.commit()

    def list_for_phone(self, phone: str) -> List[CallAttempt]:
        with store_session(self.SessionLocal, "list_call_attempts") as session:
            rows = session.execute(
                select(CallAttemptDB)
                .where(CallAttemptDB.subject_phone == phone)
                .order_by(CallAttemptDB.created_at.asc())
            ).scalars().all()
            return [
                CallAttempt(
                    id=row.id,
                    subject_phone=row.subject_phone,
                    timestamp_local=row.timestamp_local,
                    timezone=row.timezone,
                    outcome=CallOutcome(row.outcome),
                    deny_reason=DenyReason(row.deny_reason),
                    created_at=as_utc(row.created_at),
                )
                for row in rows
            ]

    def purge_before(self, cutoff: datetime) -> int:
        """Delete every attempt created before ``cutoff`` in one transaction"""
        with store_session(self.SessionLocal, "purge_call_attempts") as session:
            result = session.execute(delete(CallAttemptDB).where(CallAttemptDB.created_at < as_utc(cutoff)))
            session.commit()
            return result.rowcount


class InMemoryCallAttemptStorage(CallAttemptStorage):
    """In-memory storage for testing"""

    def __init__(self):
        self.attempts: Dict[str, CallAttempt] = {}
        self._lock = threading.Lock()

    def append(self, attempt: CallAttempt) -> None:
        with self._lock:
            self.attempts[attempt.id] = attempt

    def list_for_phone(self, phone: str) -> List[CallAttempt]:
        with self._lock:
            found = [a for a in self.attempts.values() if a.subject_phone == phone]
        return sorted(found, key=lambda a: a.created_at)

    def purge_before(self, cutoff: datetime) -> int:
        with self._lock:
            doomed = [a.id for a in self.attempts.values() if a.created_at < cutoff]
            for attempt_id in doomed:
                del self.attempts[attempt_id]
            return len(doomed)
