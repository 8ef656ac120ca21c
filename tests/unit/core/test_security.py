"""Tests for bearer-token handling."""

from datetime import timedelta

from jose import jwt

from approvalflow.core.config import get_settings
from approvalflow.core.rbac.roles import Role
from approvalflow.core.security import Principal, create_access_token, decode_access_token


class TestAccessTokens:
    def test_round_trip(self):
        token = create_access_token("checker1", Role.CHECKER)
        principal = decode_access_token(token)
        assert principal == Principal(username="checker1", role=Role.CHECKER)
        assert "sheets:approve" in principal.permissions
        assert not principal.is_admin

    def test_expired_token(self):
        token = create_access_token("maker1", Role.MAKER, expires_delta=timedelta(seconds=-1))
        assert decode_access_token(token) is None

    def test_bad_signature(self):
        settings = get_settings()
        token = jwt.encode({"sub": "x", "role": "ADMIN"}, "wrong-key", algorithm=settings.algorithm)
        assert decode_access_token(token) is None

    def test_unknown_role(self):
        settings = get_settings()
        token = jwt.encode({"sub": "x", "role": "AUDITOR"}, settings.secret_key, algorithm=settings.algorithm)
        assert decode_access_token(token) is None

    def test_missing_subject(self):
        settings = get_settings()
        token = jwt.encode({"role": "MAKER"}, settings.secret_key, algorithm=settings.algorithm)
        assert decode_access_token(token) is None

    def test_lowercase_role_claim(self):
        settings = get_settings()
        token = jwt.encode({"sub": "a", "role": "admin"}, settings.secret_key, algorithm=settings.algorithm)
        assert decode_access_token(token).is_admin
