"""
Internal Do-Not-Call list for CallGuard
Opt-out registry consulted before every outbound call
"""

from datetime import datetime
from typing import List, Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import Column, DateTime, String, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..audit import create_security_event, AuditSeverity, emit
from ..constants import AuditEventTypes
from ..crypto.encrypt import mask_for_display
from ..database import Base, as_utc, create_store_engine, init_schema, store_session, utcnow
from ..utils.validators import validate_phone

logger = structlog.get_logger(__name__)


class DoNotCallEntryDB(Base):
    """SQLAlchemy model for DNC entries"""
    __tablename__ = "dnc_list"

    phone = Column(String(16), primary_key=True)
    reason = Column(String, nullable=False)
    added_at = Column(DateTime(timezone=True), nullable=False)


class DoNotCallEntry(BaseModel):
    phone: str
    reason: str
    added_at: datetime


class DoNotCallList:
    """Storage-backed internal DNC list"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or "sqlite:///callguard.db"
        self.engine = create_store_engine(self.database_url)
        self.SessionLocal = sessionmaker(bind=self.engine)
        init_schema(self.engine)

    def add(self, phone: str, reason: str = "user_request") -> bool:
        """Add a phone; returns False if it was already listed"""
        phone = validate_phone(phone)
        try:
            with store_session(self.SessionLocal, "dnc_add") as session:
                session.add(DoNotCallEntryDB(phone=phone, reason=reason, added_at=utcnow()))
                session.commit()
        except IntegrityError:
            return False

        emit(create_security_event(
            AuditEventTypes.DNC_ADDED,
            "Phone added to do-not-call list",
            severity=AuditSeverity.INFO,
            details={"phone": mask_for_display(phone), "reason": reason},
        ))
        return True

    def remove(self, phone: str) -> bool:
        """Remove a phone; returns False if it was not listed"""
        phone = validate_phone(phone)
        with store_session(self.SessionLocal, "dnc_remove") as session:
            result = session.execute(delete(DoNotCallEntryDB).where(DoNotCallEntryDB.phone == phone))
            session.commit()

        if not result.rowcount:
            return False

        emit(create_security_event(
            AuditEventTypes.DNC_REMOVED,
            "Phone removed from do-not-call list",
            severity=AuditSeverity.INFO,
            details={"phone": mask_for_display(phone)},
        ))
        return True

    def is_listed(self, phone: str) -> bool:
        phone = validate_phone(phone)
        with store_session(self.SessionLocal, "dnc_lookup") as session:
            return session.get(DoNotCallEntryDB, phone) is not None

    def entries(self, offset: int = 0, limit: int = 100) -> List[DoNotCallEntry]:
        with store_session(self.SessionLocal, "dnc_list") as session:
            rows = session.execute(
                select(DoNotCallEntryDB)
                .order_by(DoNotCallEntryDB.added_at.asc())
                .offset(offset)
                .limit(limit)
            ).scalars().all()
            return [
                DoNotCallEntry(phone=row.phone, reason=row.reason, added_at=as_utc(row.added_at))
                for row in rows
            ]
