import os
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker

# CRITICAL: Set test settings BEFORE importing any primelist modules
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["TESTING"] = "true"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from primelist.main import app
from primelist.config import settings
from primelist.database import Base
from primelist import models  # noqa: F401
from primelist.models.property import Property, PropertyType, ListingType
from primelist.models.user import User, UserRole
from primelist.services.auth_service import create_access_token
import primelist.database as db_module
import primelist.dependencies as dependencies_module


@pytest.fixture(scope="session")
def test_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # share same in-memory DB across connections
    )
    return engine


@pytest.fixture()
def db_session(test_engine):
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine
    )
    # Fresh schema per test to avoid cross-test data
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def patch_sessionlocal(monkeypatch, test_engine, db_session):
    monkeypatch.setattr(db_module, "engine", test_engine, raising=False)

    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine
    )
    monkeypatch.setattr(db_module, "SessionLocal", TestingSessionLocal, raising=True)
    # get_db() in dependencies looks SessionLocal up at call time
    monkeypatch.setattr(
        dependencies_module, "SessionLocal", TestingSessionLocal, raising=True
    )

    # Disable rate limiter globally for tests
    if hasattr(app.state, "limiter"):
        setattr(app.state.limiter, "enabled", False)
    yield


@pytest.fixture(autouse=True)
def upload_root(monkeypatch, tmp_path):
    root = tmp_path / "uploads"
    root.mkdir()
    monkeypatch.setattr(settings, "UPLOAD_ROOT", root)
    monkeypatch.setattr(settings, "IMAGE_STORAGE_BACKEND", "database")
    return root


@pytest.fixture()
def client():
    return TestClient(app)


def make_user(db, email="agent@example.com", role=UserRole.AGENT):
    user = User(
        email=email,
        full_name="Alex Agent",
        phone="555-0100",
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_property(db, agent, **overrides):
    fields = dict(
        title="Harbor View",
        price=420000.0,
        address="1 Pier Rd",
        city="Portland",
        state="ME",
        zip_code="04101",
        property_type=PropertyType.HOUSE,
        listing_type=ListingType.SALE,
        bedrooms=3,
        agent_id=agent.id,
    )
    fields.update(overrides)
    prop = Property(**fields)
    db.add(prop)
    db.commit()
    db.refresh(prop)
    return prop


def auth_headers(user):
    token = create_access_token(
        user.email, user.id, user.role.value, timedelta(minutes=30)
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def agent(db_session):
    return make_user(db_session)


@pytest.fixture()
def listing(db_session, agent):
    return make_property(db_session, agent)
