"""
Test configuration and fixtures for Guest List Access.

- Fresh in-memory SQLite database per test (or TEST_DATABASE_URL)
- Frozen clock and recording notification sender injected everywhere
- TestClient with database, clock and sender dependency overrides
"""

import os

# Settings are read at import time; configure before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("USE_STUB_BROKER", "true")
os.environ.setdefault("NOTIFICATION_BACKEND", "log")
os.environ.setdefault("OTP_HASH_ROUNDS", "4")
os.environ.setdefault("STAFF_API_KEY", "test-staff-key")
os.environ.setdefault("TOKEN_HASH_KEY", "test-token-hash-key")
os.environ.setdefault("ASSERTION_SECRET", "test-assertion-secret")
os.environ.setdefault("PUBLIC_BASE_URL", "https://guests.example.com")

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base, enable_sqlite_transactions, get_db
from app.main import app
from app.services.access.dependencies import get_clock
from app.services.access.service import InvitationService
from app.services.notifications import get_notification_sender
from tests.fixtures.mocks import FrozenClock, RecordingNotificationSender

STAFF_KEY = "test-staff-key"


# =============================================================================
# Database Fixtures
# =============================================================================


def get_test_database_url() -> str:
    """
    Get the test database URL.

    TEST_DATABASE_URL (e.g. a PostgreSQL database) wins; otherwise each test
    gets a private in-memory SQLite database.
    """
    return os.environ.get("TEST_DATABASE_URL", "sqlite://")


@pytest.fixture
def test_engine():
    """
    Create a database engine with all tables for one test.

    The services commit their own transactions, so isolation comes from a
    fresh schema per test rather than a rolled back outer transaction.
    """
    database_url = get_test_database_url()
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        enable_sqlite_transactions(engine)
    else:
        engine = create_engine(database_url)

    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(bind=test_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Database session shared by the test and the code under test."""
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Collaborator Fakes
# =============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotificationSender:
    return RecordingNotificationSender()


@pytest.fixture
def service(db: Session, notifier, clock) -> InvitationService:
    return InvitationService(db, notifier, clock=clock)


# =============================================================================
# TestClient Fixtures
# =============================================================================


@pytest.fixture
def client(db: Session, notifier, clock) -> Generator[TestClient, None, None]:
    """
    TestClient with database, clock and notification overrides.

    The database session is injected into the app's get_db dependency.
    """

    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close - managed by db fixture

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sender] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as test_client:
        # Set default Referer so CSRF Origin middleware allows requests
        test_client.headers["referer"] = "http://testserver/"
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def staff_client(client: TestClient) -> TestClient:
    client.headers["x-staff-key"] = STAFF_KEY
    return client


# =============================================================================
# pytest markers
# =============================================================================


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "security: marks tests as security tests (deselect with '-m not security')",
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
