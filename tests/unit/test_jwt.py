"""Tests for JWT token verification."""

from __future__ import annotations

from datetime import timedelta

import jwt
import pytest

from shiftwatch.auth.jwt import create_access_token, verify_token


class TestAccessToken:
    def test_create_and_verify(self):
        token = create_access_token(user_id=1, role="admin")
        payload = verify_token(token, expected_type="access")
        assert payload["sub"] == "1"
        assert payload["role"] == "admin"
        assert payload["iss"] == "shiftwatch"
        assert payload["type"] == "access"

    def test_default_role(self):
        assert verify_token(create_access_token(user_id=2))["role"] == "volunteer"

    def test_wrong_type_rejected(self):
        token = create_access_token(user_id=1)
        with pytest.raises(jwt.InvalidTokenError, match="Expected token type"):
            verify_token(token, expected_type="refresh")

    def test_expired_rejected(self):
        token = create_access_token(user_id=1, expires_in=timedelta(seconds=-5))
        with pytest.raises(jwt.InvalidTokenError, match="expired"):
            verify_token(token)

    def test_tampered_rejected(self):
        token = create_access_token(user_id=1)
        header, payload, signature = token.split(".")
        tampered = ".".join([header, payload, signature[::-1]])
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(tampered)
