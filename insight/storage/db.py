"""Database plumbing for the durable key-value store and the request ledger."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from insight.config import get_settings
from insight.core.models import utcnow

Base = declarative_base()


class KeyValueEntry(Base):
    """One slot of the durable store; ``value`` holds JSON text."""

    __tablename__ = "kv_entries"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class ServiceRequestRecord(Base):
    """Persisted record of one OCR or AI round trip."""

    __tablename__ = "service_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(16), nullable=False)
    service = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    capture_handle = Column(String(64), nullable=True)
    result = Column(Text, nullable=True)
    error_kind = Column(String(32), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "service": self.service,
            "status": self.status,
            "capture_handle": self.capture_handle,
            "result": self.result,
            "error_kind": self.error_kind,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def create_session_factory(database_url: str) -> sessionmaker:
    """Build an engine for ``database_url``, create tables and return a session factory."""

    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


def get_engine() -> Engine:
    """Construct (or return cached) SQLAlchemy engine."""

    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(settings.resolved_database_url(), pool_pre_ping=True)
        Base.metadata.create_all(bind=_engine)
    return _engine


def get_session_factory() -> sessionmaker:
    """Return a session factory bound to the configured engine."""

    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _SessionLocal


@contextmanager
def session_scope(session_factory: sessionmaker | None = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    factory = session_factory or get_session_factory()
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
