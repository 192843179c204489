"""
Database engine, session factory, and metadata shared across the core.

The engine is built lazily from settings so importing models never requires
a database driver; tests bind their own engine via ``init_session_factory``.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from clinic_booking.core.config import settings

logger = logging.getLogger(__name__)

Base: Any = declarative_base()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)

_engine: Optional[Engine] = None


def _build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, future=True, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        future=True,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=5,
        pool_recycle=1800,
        pool_pre_ping=True,
        connect_args={"connect_timeout": 5, "application_name": "clinic_booking"},
    )


def get_engine() -> Engine:
    """Return the process engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = _build_engine(settings.database_url)
        _attach_pool_listeners(_engine)
        SessionLocal.configure(bind=_engine)
    return _engine


def init_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Bind the session factory to ``engine`` (or the settings engine). Idempotent."""
    global _engine
    if engine is not None:
        _engine = engine
        SessionLocal.configure(bind=engine)
    else:
        get_engine()
    return SessionLocal


def _attach_pool_listeners(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    @event.listens_for(engine, "checkin")
    def receive_checkin(dbapi_connection: Any, connection_record: Any) -> None:
        logger.debug("Connection returned to pool")


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    init_session_factory()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


__all__ = ["Base", "SessionLocal", "get_db", "get_engine", "init_session_factory"]
