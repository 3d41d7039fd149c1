"""Tests for OAuth2 models."""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from core.oauth2.models import (
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    EXPIRY_SAFETY_MARGIN_SECONDS,
    OIDCEndpoints,
    TokenResponse,
    TokenSession,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


class TestTokenResponse:

    def test_parses_provider_body(self):
        response = TokenResponse.model_validate(
            {
                "access_token": "at",
                "expires_in": 300,
                "refresh_token": "rt",
                "token_type": "Bearer",
                "not-before-policy": 0,
                "session_state": "abc",
            }
        )
        assert response.access_token == "at"
        assert response.expires_in == 300
        assert response.refresh_token == "rt"

    def test_access_token_required(self):
        with pytest.raises(ValidationError):
            TokenResponse.model_validate({"expires_in": 300})


class TestTokenSession:

    def test_expiry_includes_safety_margin(self):
        session = TokenSession.from_response(TokenResponse(access_token="at", expires_in=300), now=NOW)
        assert session.expires_at == NOW + timedelta(seconds=300 - EXPIRY_SAFETY_MARGIN_SECONDS)

    def test_default_lifetime_without_expires_in(self):
        session = TokenSession.from_response(TokenResponse(access_token="at"), now=NOW)
        assert session.expires_at == NOW + timedelta(
            seconds=DEFAULT_TOKEN_LIFETIME_SECONDS - EXPIRY_SAFETY_MARGIN_SECONDS
        )

    def test_is_expired(self):
        session = TokenSession(access_token="at", expires_at=NOW)
        assert session.is_expired(now=NOW)
        assert not session.is_expired(now=NOW - timedelta(seconds=1))

    def test_refresh_token_carried(self):
        session = TokenSession.from_response(
            TokenResponse(access_token="at", refresh_token="rt", expires_in=60), now=NOW
        )
        assert session.refresh_token == "rt"
        assert session.code_verifier is None


class TestOIDCEndpoints:

    def test_urls(self):
        endpoints = OIDCEndpoints("https://id.example.org/", "school")
        base = "https://id.example.org/realms/school/protocol/openid-connect"

        assert endpoints.base_url == "https://id.example.org"
        assert endpoints.authorization_url == f"{base}/auth"
        assert endpoints.token_url == f"{base}/token"
        assert endpoints.logout_url == f"{base}/logout"
        assert endpoints.userinfo_url == f"{base}/userinfo"
        assert endpoints.admin_url == "https://id.example.org/admin/realms/school"
