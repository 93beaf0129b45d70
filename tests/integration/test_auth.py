"""Integration tests for JWT authentication.

Validates:
  - /health is public (plain Django view, no DRF).
  - Protected DRF endpoints return 401 without a token.
  - Protected DRF endpoints return 401 with an invalid or malformed token.
  - A token issued by /api/v1/auth/token/ grants access.
"""

import pytest

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/orders/"


class TestPublicEndpoints:
    """Health check must remain accessible without credentials."""

    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestProtectedEndpoints:
    """All DRF endpoints require a valid JWT by default (Fail Closed)."""

    @pytest.mark.parametrize(
        "url",
        [
            ORDERS_URL,
            "/api/v1/workers/available/",
            "/api/v1/assignment/system/health/",
        ],
    )
    def test_no_token_returns_401(self, api_client, url):
        response = api_client.get(url)
        assert response.status_code == 401

    def test_invalid_token_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer invalid.token.here")
        response = api_client.get(ORDERS_URL)
        assert response.status_code == 401

    def test_malformed_auth_header_returns_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Token some-token")
        response = api_client.get(ORDERS_URL)
        assert response.status_code == 401

    def test_401_includes_www_authenticate_header(self, api_client):
        response = api_client.get(ORDERS_URL)
        assert response.status_code == 401
        assert "Bearer" in response.get("WWW-Authenticate", "")


class TestTokenFlow:
    def test_obtained_token_grants_access(self, api_client, owner):
        response = api_client.post(
            "/api/v1/auth/token/",
            {"username": "owner", "password": "testpass123"},
            format="json",
        )
        assert response.status_code == 200

        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        assert api_client.get(ORDERS_URL).status_code == 200

    def test_wrong_password_rejected(self, api_client, owner):
        response = api_client.post(
            "/api/v1/auth/token/",
            {"username": "owner", "password": "nope"},
            format="json",
        )
        assert response.status_code == 401
