"""Pytest configuration and shared fixtures.

The application reads its settings at import time, so the test database URL
is set before anything from ``approvalflow`` is imported.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENGINE_BACKEND"] = "local"
os.environ["AUTO_MIGRATE"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from approvalflow.api.deps import get_db, get_engine
from approvalflow.api.main import app
from approvalflow.core.rbac.roles import Role
from approvalflow.core.security import Principal, create_access_token
from approvalflow.db.base import Base
from approvalflow.db import models  # noqa: F401
from approvalflow.services.workflow_engine import LocalEngineClient


@pytest.fixture()
def engine():
    """In-memory SQLite engine shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLAlchemy own BEGIN so SAVEPOINTs behave as on PostgreSQL
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    """Database session for a single test."""
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def local_engine():
    return LocalEngineClient()


@pytest.fixture()
def client(db_session, local_engine):
    """TestClient wired to the test session and the local engine adapter."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_engine] = lambda: local_engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def maker():
    return Principal(username="maker1", role=Role.MAKER)


@pytest.fixture()
def other_maker():
    return Principal(username="maker2", role=Role.MAKER)


@pytest.fixture()
def checker():
    return Principal(username="checker1", role=Role.CHECKER)


@pytest.fixture()
def admin():
    return Principal(username="admin1", role=Role.ADMIN)


def _headers(principal: Principal) -> dict:
    return {"Authorization": f"Bearer {create_access_token(principal.username, principal.role)}"}


@pytest.fixture()
def maker_headers(maker):
    return _headers(maker)


@pytest.fixture()
def checker_headers(checker):
    return _headers(checker)


@pytest.fixture()
def admin_headers(admin):
    return _headers(admin)


@pytest.fixture()
def sample_rows():
    """Valid rows for each entity type: 2 items, 3 plans, 1 product."""
    return {
        "item": [
            {"item_name": "Hospital Cash", "item_category": "HEALTH", "price": 120.0,
             "quantity": 10, "effective_date": "2026-01-01"},
            {"item_name": "Accidental Death", "item_category": "LIFE", "price": 80.5,
             "quantity": 4, "effective_date": "2026-01-01"},
        ],
        "plan": [
            {"plan_name": "Silver", "plan_type": "INDIVIDUAL", "premium": 500.0,
             "coverage_amount": 100000, "effective_date": "2026-02-01"},
            {"plan_name": "Gold", "plan_type": "INDIVIDUAL", "premium": 900.0,
             "coverage_amount": 250000, "effective_date": "2026-02-01"},
            {"plan_name": "Family Floater", "plan_type": "FAMILY", "premium": 1500.0,
             "coverage_amount": 500000, "effective_date": "2026-02-01"},
        ],
        "product": [
            {"product_name": "Health Shield", "rate": 1.25, "api": "health-shield-v1",
             "effective_date": "2026-03-01"},
        ],
    }
