"""
Shared test fixtures for CycleLedger tests

Provides database setup, client creation, and user/project fixtures
"""
import os

# Point the application at throwaway settings before it is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CYCLE_LOCK_SUPPORT"] = "true"
os.environ["LOG_FORMAT"] = "text"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cycleledger.main import app
from cycleledger.db.base import Base
from cycleledger.db.session import get_db
from cycleledger.core.ledger_config import LedgerConfig
from cycleledger.core.security import create_access_token
from cycleledger.services.cycle_lock import CycleLockGuard
from cycleledger.services import inventory_service

from tests.factories import (
    ORG_ID,
    OTHER_ORG_ID,
    assign_user_to_project,
    create_test_cycle,
    create_test_project,
    create_test_user,
    reset_sequences,
)


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    import cycleledger.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _reset_factory_sequences():
    reset_sequences()
    yield


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    create_tables(engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_tables(engine)


@pytest.fixture
def client(db_session):
    """Create a test client with database override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def ledger_config():
    return LedgerConfig(cycle_lock_supported=True, allow_negative_stock=True)


@pytest.fixture
def guard(ledger_config):
    return CycleLockGuard(ledger_config)


@pytest.fixture
def balance_lock_calls(monkeypatch):
    """Record the key of every balance row lock, in the order taken"""
    calls = []
    lock_balance = inventory_service._lock_balance

    def recording_lock(db, key):
        calls.append(key)
        return lock_balance(db, key)

    monkeypatch.setattr(inventory_service, "_lock_balance", recording_lock)
    return calls


@pytest.fixture
def admin_user(db_session):
    """Create an admin user for testing"""
    user = create_test_user(db_session, email="admin@test.com", role="admin")
    db_session.commit()
    return user


@pytest.fixture
def member_user(db_session):
    """Create a non-admin user with no project assignments"""
    user = create_test_user(db_session, email="member@test.com", role="member")
    db_session.commit()
    return user


@pytest.fixture
def outsider_user(db_session):
    """Create an admin user in another organization"""
    user = create_test_user(db_session, email="outsider@test.com", role="admin", organization_id=OTHER_ORG_ID)
    db_session.commit()
    return user


@pytest.fixture
def project(db_session):
    project = create_test_project(db_session, organization_id=ORG_ID, name="Spring Harvest")
    db_session.commit()
    return project


@pytest.fixture
def cycle(db_session, project):
    cycle = create_test_cycle(db_session, project, name="2026 Q1")
    db_session.commit()
    return cycle


@pytest.fixture
def locked_cycle(db_session, project):
    cycle = create_test_cycle(db_session, project, name="2025 Q4", locked=True)
    db_session.commit()
    return cycle


@pytest.fixture
def assigned_member(db_session, member_user, project):
    """Member user assigned directly to the project"""
    assign_user_to_project(db_session, member_user, project)
    db_session.commit()
    return member_user


@pytest.fixture
def admin_headers(admin_user):
    return {"Authorization": f"Bearer {create_access_token(admin_user.id)}"}


@pytest.fixture
def member_headers(member_user):
    return {"Authorization": f"Bearer {create_access_token(member_user.id)}"}
