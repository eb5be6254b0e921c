"""
SQLAlchemy engine and session management for CallGuard
Shared declarative base and store-error translation
"""

from contextlib import contextmanager
from datetime import datetime, UTC
from typing import Iterator, Optional

import structlog
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .exceptions import StoreUnavailableError

logger = structlog.get_logger(__name__)

Base = declarative_base()


def create_store_engine(database_url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across sessions"""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True)


def init_schema(engine: Engine) -> None:
    """Create all CallGuard tables that do not exist yet"""
    Base.metadata.create_all(bind=engine)


@contextmanager
def store_session(factory: sessionmaker, operation: str) -> Iterator[Session]:
    """
    Open a session for one store operation.

    Integrity errors propagate unchanged so callers can resolve write
    conflicts; every other database failure becomes StoreUnavailableError.
    """
    try:
        with factory() as session:
            yield session
    except IntegrityError:
        raise
    except SQLAlchemyError as e:
        logger.error("Store operation failed", operation=operation, error=str(e))
        raise StoreUnavailableError(operation, reason=type(e).__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from stores without tz support"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utcnow() -> datetime:
    return datetime.now(UTC)
