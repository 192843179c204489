# backend/tests/conftest.py
"""
Pytest configuration for the clinic booking core.

Every test gets a fresh in-memory SQLite database (StaticPool so all
sessions share one connection), an in-memory CacheService, a frozen clock
and a recording stand-in for the Celery enqueue helper. Nothing here talks
to a real Redis, PostgreSQL or broker.
"""

import os
import sys

os.environ.setdefault("CI", "true")

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if backend_dir not in sys.path:
    sys.path.insert(0, backend_dir)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_booking.core.enums import RoleName
from clinic_booking.database import Base
import clinic_booking.models  # noqa: F401
from clinic_booking.principal import Actor
from clinic_booking.services.availability_service import AvailabilityService
from clinic_booking.services.booking_service import BookingService
from clinic_booking.services.booking_validator import BookingValidator
from clinic_booking.services.cache_service import CacheService
from clinic_booking.services.notification_service import NotificationService
from tests._utils.clinic_seed import FrozenClock, RecordingEnqueue, Seed, World


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def cache() -> CacheService:
    return CacheService(connect=False)


@pytest.fixture
def enqueue() -> RecordingEnqueue:
    return RecordingEnqueue()


@pytest.fixture
def notifications(enqueue) -> NotificationService:
    return NotificationService(enqueue=enqueue, queue="notifications")


@pytest.fixture
def seed(db) -> Seed:
    return Seed(db)


@pytest.fixture
def world(seed) -> World:
    return World(seed)


@pytest.fixture
def availability_service(db, cache, clock) -> AvailabilityService:
    return AvailabilityService(db, cache, now_provider=clock)


@pytest.fixture
def validator(db, availability_service, clock) -> BookingValidator:
    return BookingValidator(db, availability_service, now_provider=clock)


@pytest.fixture
def booking_service(db, cache, notifications, availability_service, validator, clock) -> BookingService:
    return BookingService(
        db,
        cache=cache,
        notification_service=notifications,
        availability_service=availability_service,
        validator=validator,
        now_provider=clock,
    )


@pytest.fixture
def staff_actor() -> Actor:
    return Actor("01J0STAFF000000000000000AA", RoleName.STAFF)
