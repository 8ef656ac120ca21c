"""Tests for the health check endpoints."""

from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from approvalflow.api.deps import get_db
from approvalflow.api.main import app


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


def test_liveness(client):
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


def test_readiness(client):
    response = client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["database"]["status"] == "healthy"
    assert data["checks"]["database"]["dialect"] == "sqlite"


def test_readiness_database_down(client):
    broken = MagicMock()
    broken.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

    def override_get_db():
        yield broken

    app.dependency_overrides[get_db] = override_get_db
    response = client.get("/health/ready")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "not_ready"
    assert data["failed"] == ["database"]


def test_health_not_audited(client):
    response = client.get("/health")
    assert "X-Request-ID" not in response.headers
