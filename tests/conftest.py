"""
Shared fixtures for the scheduling engine test-suite.

Every test gets a fresh in-memory SQLite database, a clock pinned to a
Monday morning in the school timezone and a notifier that records what
would have been sent.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from autoecole import models  # noqa: E402,F401  register mappers
from autoecole.core.clock import FixedClock  # noqa: E402
from autoecole.core.enums import RoleName  # noqa: E402
from autoecole.core.principal import Principal  # noqa: E402
from autoecole.database import Base, build_engine  # noqa: E402
from autoecole.engine import SchedulingEngine  # noqa: E402

from .factories import NOW, RecordingNotifier  # noqa: E402


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite://", echo=False)
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(db, clock, notifier) -> SchedulingEngine:
    return SchedulingEngine(db, clock=clock, notifier=notifier)


@pytest.fixture
def admin() -> Principal:
    return Principal(user_id="admin-1", role=RoleName.ADMIN)


@pytest.fixture
def instructor() -> Principal:
    return Principal(user_id="instructor-1", role=RoleName.INSTRUCTOR)


@pytest.fixture
def other_instructor() -> Principal:
    return Principal(user_id="instructor-2", role=RoleName.INSTRUCTOR)


@pytest.fixture
def student() -> Principal:
    return Principal(user_id="student-1", role=RoleName.STUDENT)


@pytest.fixture
def other_student() -> Principal:
    return Principal(user_id="student-2", role=RoleName.STUDENT)
