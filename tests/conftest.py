import os

# Settings are read at import time, so the test environment must be set first
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["ENVIRONMENT"] = "development"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["HEALTH_REMINDER_CRON_SECRET"] = "test-cron-secret"
os.environ["RATE_LIMIT_PER_MINUTE"] = "120"
for flag in (
    "ENABLE_HEALTH_MGMT",
    "ENABLE_BEHAVIOR_TRACKING",
    "ENABLE_MICRO_BEHAVIOR_TRACKING",
    "ENABLE_USER_PROFILES",
):
    os.environ[flag] = "true"

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from healthtrack.core.cache import analytics_cache  # noqa: E402
from healthtrack.core.rate_limit import rate_limiter  # noqa: E402
from healthtrack.core.security import create_access_token  # noqa: E402
from healthtrack.db.base import Base  # noqa: E402
from healthtrack.db.init_db import seed_health_types  # noqa: E402
from healthtrack.db.session import SessionLocal, engine  # noqa: E402
from healthtrack.main import app  # noqa: E402
from healthtrack.utils.timezone import utcnow  # noqa: E402

TEST_USER_ID = "user_test_1"
OTHER_USER_ID = "user_test_2"


def bearer(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def iso_ago(**delta) -> str:
    """ISO timestamp `delta` in the past, the way clients send dates."""
    return (utcnow() - timedelta(**delta)).isoformat() + "Z"


def iso_ahead(**delta) -> str:
    return (utcnow() + timedelta(**delta)).isoformat() + "Z"


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        seed_health_types(session)
    finally:
        session.close()
    analytics_cache.clear()
    rate_limiter.reset()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return bearer(TEST_USER_ID)


@pytest.fixture
def other_headers():
    return bearer(OTHER_USER_ID)
