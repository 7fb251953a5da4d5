import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ["APP_ENV"] = "dev"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("INFOBIP_DRY_RUN", "true")
os.environ.setdefault("INFOBIP_WHATSAPP_SENDER", "447860099299")
os.environ.setdefault("INBOUND_DEDUPE_ENABLED", "true")
os.environ["REALTIME_REDIS_URL"] = ""  # Tests inject a fake publisher
# Note: ADMIN_API_KEY not set by default - admin tests patch it where needed

from app.api.dependencies import get_messaging, get_publisher
from app.db.base import Base
from app.db.deps import get_db
# Import all models so Base.metadata includes every table
import app.db.models as _models  # noqa: F401
from app.main import app
from tests.helpers.campaign import FakeMessenger, FakePublisher, SeededQuestion, seed_question

# Test database URL (in-memory SQLite for fast tests)
SQLALCHEMY_DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///:memory:")


def is_sqlite() -> bool:
    """Return True if the test database is SQLite (e.g. in-memory tests)."""
    url = SQLALCHEMY_DATABASE_URL or ""
    return url.startswith("sqlite")


# SQLite needs check_same_thread=False and StaticPool; Postgres does not support check_same_thread
if is_sqlite():
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Make the app (and every store it builds) use the same DB
import app.db.session as _db_session

_db_session.engine = engine
_db_session.SessionLocal = TestingSessionLocal


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db):
    """Session factory the stores use; shares the per-test database."""
    return TestingSessionLocal


@pytest.fixture
def file_session_factory(tmp_path):
    """
    File-backed SQLite database for thread-concurrency tests.

    Each thread gets its own connection, unlike the StaticPool in-memory engine.
    """
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=file_engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    finally:
        file_engine.dispose()


@pytest.fixture
def question(db) -> SeededQuestion:
    return seed_question(db, "Which planet is largest?", ["Jupiter", "Saturn", "Neptune"])


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture(scope="function")
def client(db, messenger, publisher):
    """Create a test client with database and capability overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_messaging] = lambda: messenger
    app.dependency_overrides[get_publisher] = lambda: publisher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
