"""Pytest fixtures for testing."""
from datetime import date, datetime, timedelta
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from app.main import app, limiter
from app.db.database import Base, get_db
from app.routers.dashboard import get_today
from app.services.assessment import get_assessment_client
from app.services.session_registry import SessionRegistry, get_registry

TODAY = date(2024, 3, 15)


class FakeClock:
    """Clock returning a fixed start time, advanced manually."""

    def __init__(self, start=datetime(2024, 3, 15, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class FakeAssessmentClient:
    """Stand-in for the Gemini client recording prompts."""

    def __init__(self, text="Great work!", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.text


def _make_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def test_db():
    """Create a test database for each test."""
    engine = _make_engine()
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    db = SessionLocal()

    yield db

    db.close()
    engine.dispose()


@pytest.fixture
def assessment_client():
    return FakeAssessmentClient()


@pytest.fixture
def registry():
    """Registry without a display ticker so no threads outlive a test."""
    registry = SessionRegistry(tick_interval=None)
    yield registry
    registry.shutdown()


@pytest.fixture(scope="function")
def test_client(registry, assessment_client):
    """Create a test client with an in-memory database and fixed date."""
    engine = _make_engine()
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_today] = lambda: TODAY
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_assessment_client] = lambda: assessment_client

    limiter.reset()
    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()
    limiter.reset()
    engine.dispose()
