"""Tests for JWT session tokens."""
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from bruinmarket.auth.service import (
    InvalidTokenError,
    create_access_token,
    decode_access_token,
)


class TestTokenRoundTrip:
    def test_decode_returns_user_id(self):
        token = create_access_token("42", email="joe@ucla.edu")
        assert decode_access_token(token) == "42"

    def test_claims(self, test_config):
        token = create_access_token(42, email="joe@ucla.edu")
        claims = jwt.decode(
            token,
            test_config.secrets.jwt.secret_key,
            algorithms=[test_config.secrets.jwt.algorithm],
        )
        assert claims["user_id"] == "42"
        assert claims["email"] == "joe@ucla.edu"

    def test_default_expiry_is_seven_days(self, test_config):
        token = create_access_token("42")
        claims = jwt.get_unverified_claims(token)
        lifetime = claims["exp"] - claims["iat"]
        assert lifetime == test_config.auth.token_expire_minutes * 60 == 7 * 24 * 3600


class TestRejectedTokens:
    """Every failure surfaces as InvalidTokenError."""

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token(self, token):
        with pytest.raises(InvalidTokenError):
            decode_access_token(token)

    def test_garbage_token(self):
        with pytest.raises(InvalidTokenError):
            decode_access_token("not-a-jwt")

    def test_wrong_secret(self):
        token = jwt.encode({"user_id": "42"}, "some-other-secret", algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            decode_access_token(token)

    def test_expired_token(self):
        token = create_access_token("42", expires_minutes=-1)
        with pytest.raises(InvalidTokenError):
            decode_access_token(token)

    def test_token_without_user_id(self, test_config):
        token = jwt.encode(
            {"email": "joe@ucla.edu", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            test_config.secrets.jwt.secret_key,
            algorithm=test_config.secrets.jwt.algorithm,
        )
        with pytest.raises(InvalidTokenError):
            decode_access_token(token)


class TestBearerDependency:
    """The bearer dependency is exercised through a protected route."""

    def test_missing_header_is_401(self, api_client):
        response = api_client.get("/api/conversations")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_invalid_token_is_401(self, api_client):
        response = api_client.get(
            "/api/conversations", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    def test_valid_token(self, api_client, auth_headers):
        response = api_client.get("/api/conversations", headers=auth_headers("42"))
        assert response.status_code == 200
        assert response.json() == {"conversations": [], "count": 0}
