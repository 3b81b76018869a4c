"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database (StaticPool: one shared
connection). Every test gets freshly created tables, and the API's `get_db`
dependency is overridden to hand out the test's own session so test code and
request handlers see the same state.
"""
import os
import sys

# Configure the app before anything imports core.config.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["IDENTITY_JWT_SECRET"] = "test-identity-secret-0123456789abcdef"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["ADMIN_DASH_TOKEN"] = "admin-test-token"
os.environ["APP_TIMEZONE"] = "America/Denver"
os.environ["LOG_FORMAT"] = "text"
for _name in ("STRIPE_SECRET_KEY", "OPENAI_API_KEY", "RECON_ALERT_WEBHOOK_URL", "SENTRY_DSN", "IDENTITY_JWT_AUDIENCE"):
    os.environ.pop(_name, None)

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from core.capabilities import get_capabilities, reset_capabilities_cache  # noqa: E402
from core.database import Base, SessionLocal, engine, get_db  # noqa: E402
from main import app  # noqa: E402
from models import UserProfile  # noqa: E402



@pytest.fixture(scope="function")
def db_session():
    """
    Fresh schema per test.

    The overridden dependency commits on success and rolls back on error, the
    same contract as `core.database.get_db`.
    """
    Base.metadata.create_all(bind=engine)
    reset_capabilities_cache()
    session = SessionLocal()
    get_capabilities(session)

    def _override_get_db():
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield session
    finally:
        app.dependency_overrides.pop(get_db, None)
        session.close()
        Base.metadata.drop_all(bind=engine)
        reset_capabilities_cache()


@pytest.fixture
def client(db_session):
    return TestClient(app)


@pytest.fixture
def make_user(db_session):
    """Create and commit a profile; returns it."""

    def _make(user_id="user_1", email=None, **fields):
        profile = UserProfile(user_id=user_id, email=email, **fields)
        db_session.add(profile)
        db_session.commit()
        return profile

    return _make


@pytest.fixture
def premium_fields():
    return {"plan_tier": "premium", "subscription_status": "active"}


