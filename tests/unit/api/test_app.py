"""Tests for authentication, middleware and error mapping of the API."""

import logging
from datetime import timedelta

from fastapi.testclient import TestClient

from approvalflow.api.main import app
from approvalflow.api.middleware.audit import redact_sensitive, log_level_for
from approvalflow.core.rbac.roles import Role
from approvalflow.core.security import create_access_token


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["engine"] == "local"
    assert data["version"]


class TestAuthentication:
    def test_missing_token(self, client):
        response = client.get("/api/tasks")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client):
        response = client.get("/api/tasks", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_expired_token(self, client):
        token = create_access_token("maker1", Role.MAKER, expires_delta=timedelta(minutes=-5))
        response = client.get("/api/tasks", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_role_without_permission(self, client, checker_headers):
        response = client.post("/api/processes", json={}, headers=checker_headers)
        assert response.status_code == 403
        assert "processes:create" in response.json()["detail"]


class TestErrorMapping:
    def test_not_found(self, client, maker_headers):
        response = client.get("/api/processes/does-not-exist", headers=maker_headers)
        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "PROCESS_NOT_FOUND"
        assert body["error"] == "ProcessNotFoundError"
        assert body["context"] == {"process_instance_id": "does-not-exist"}

    def test_unknown_entity_type(self, client, maker_headers):
        response = client.get("/api/master/widget", headers=maker_headers)
        assert response.status_code == 422

    def test_validation_errors_listed_per_row(self, client, maker_headers, sample_rows):
        pid = client.post("/api/processes", json={}, headers=maker_headers).json()["id"]
        rows = [sample_rows["item"][0], {"item_name": "No price", "item_category": "X",
                                         "quantity": 1, "effective_date": "2026-01-01"}]

        response = client.post(f"/api/processes/{pid}/stages/item/submit",
                               json={"rows": rows}, headers=maker_headers)

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert [e["row"] for e in body["context"]["errors"]] == [1]


class TestMiddleware:
    def test_security_headers(self, client):
        response = client.get("/")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "Strict-Transport-Security" in response.headers

    def test_request_id_header(self, client):
        response = client.get("/")
        assert len(response.headers["X-Request-ID"]) == 8

    def test_audit_log_names_principal(self, client, maker_headers, caplog):
        with caplog.at_level(logging.INFO, logger="approvalflow.audit"):
            client.post("/api/processes", json={"business_key": "AUDIT-1"}, headers=maker_headers)

        records = [r for r in caplog.records if r.name == "approvalflow.audit"]
        assert records
        audit = records[-1].audit
        assert audit["username"] == "maker1"
        assert audit["role"] == "MAKER"
        assert audit["status_code"] == 201
        assert audit["request_body"] == {"business_key": "AUDIT-1"}

    def test_redact_sensitive(self):
        data = {"rows": [{"Token": "abc", "item_name": "x"}], "password": "p"}
        assert redact_sensitive(data) == {
            "rows": [{"Token": "[REDACTED]", "item_name": "x"}],
            "password": "[REDACTED]",
        }

    def test_log_level_for(self):
        assert log_level_for(200) == logging.INFO
        assert log_level_for(409) == logging.WARNING
        assert log_level_for(500) == logging.ERROR


def test_docs_disabled_outside_debug():
    with TestClient(app) as plain_client:
        assert plain_client.get("/docs").status_code == 404
