"""Shared test fixtures for the docgate test suite.

All tests run against an in-memory SQLite database (one shared connection
via StaticPool). Tables are dropped and recreated before each test, so
every test starts from an empty store.

Time-sensitive service tests pass an explicit ``now``; API tests use rules
whose windows are wide around the real clock.
"""

import itertools
import os

# Use the in-memory database and fixed secrets before any app imports.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FORMAT"] = "text"
os.environ["ENVIRONMENT"] = "development"
os.environ["JWT_SECRET_KEY"] = "test-session-secret-0123456789abcdef"
os.environ["OIDC_SIGNING_SECRET"] = "test-oidc-secret-0123456789abcdef"
os.environ["OIDC_CLIENT_SECRET"] = ""
os.environ["OIDC_ISSUER"] = ""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from passlib.hash import bcrypt

from docgate.database import Base, get_db, engine, SessionLocal
from docgate.main import app
from docgate.core.token_factory import create_token
from docgate.core.config import settings
from docgate.middleware.request_context import _rate_buckets
from docgate.models.access_rule import AccessRule, TargetType
from docgate.models.user import User

# Fixed instant for service-level tests.
T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _clean_tables():
    """Recreate all tables before each test for isolation."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def client(db):
    """FastAPI TestClient with the DB dependency overridden to use the test session."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    _rate_buckets.clear()  # Reset rate limiter so tests don't hit 429
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    """Factory inserting users directly. Pass ``password`` to enable login."""
    counter = itertools.count(1)

    def _make(role="reader", name=None, email=None, is_active=True, password=None):
        n = next(counter)
        user = User(
            name=name or f"User {n}",
            email=email or f"user{n}@example.com",
            role=role,
            is_active=is_active,
            password_hash=bcrypt.hash(password) if password else None,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_rule(db):
    """Factory inserting access rules directly.

    Defaults to a window of one day either side of *now* (real clock),
    which keeps API tests independent of the exact time they run.
    """

    def _make(
        user,
        target_type=TargetType.DOCUMENT,
        target_id="doc-1",
        start=None,
        end=None,
        is_active=True,
        target_name=None,
        created_at=None,
    ):
        now = datetime.now(timezone.utc)
        rule = AccessRule(
            user_id=user.id,
            target_type=TargetType(target_type).value,
            target_id=target_id,
            target_name=target_name or target_id,
            start_date=start or now - timedelta(days=1),
            end_date=end or now + timedelta(days=1),
            is_active=is_active,
        )
        if created_at is not None:
            rule.created_at = created_at
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule

    return _make


@pytest.fixture()
def auth_headers():
    """Build bearer headers carrying a valid session token for *user*."""

    def _headers(user) -> dict:
        token = create_token(
            subject=str(user.id),
            role=user.role,
            secret=settings.jwt_secret_key,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
