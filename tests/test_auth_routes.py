"""
Tests for authentication routes.
"""

from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from authmate.core.domain import SessionPrincipal
from authmate.core.state import decode_state
from authmate.core.tokens import get_token_issuer
from authmate.oauth.dependencies import get_registry

from tests.conftest import app


@pytest.fixture
def principal():
    return SessionPrincipal(
        provider_key="google-user-1",
        provider_type="google",
        display_name="Ada Lovelace",
        email="ada@example.com",
        roles={"Administrator", "Editor"},
    )


@pytest.fixture
def web_client(registry, issuer):
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_token_issuer] = lambda: issuer

    client = TestClient(app)
    yield client

    app.dependency_overrides.pop(get_registry, None)
    app.dependency_overrides.pop(get_token_issuer, None)


@pytest.fixture
def bearer(issuer, principal):
    return {"Authorization": f"Bearer {issuer.issue(principal).token}"}


class TestLoginPage:
    """Tests for GET /login."""

    def test_lists_providers(self, web_client):
        response = web_client.get("/login")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["error"] is None
        assert {"name": "Google", "login_url": "/auth/login/google"} in data["providers"]
        assert {"name": "GitHub", "login_url": "/auth/login/github"} in data["providers"]

    def test_shows_error_code(self, web_client):
        response = web_client.get("/login", params={"error": "invalid_state"})

        assert response.json()["status"] == "error"
        assert response.json()["error"] == "invalid_state"


class TestLoginRedirect:
    """Tests for GET /auth/login/{provider}."""

    def test_redirects_with_signin_state(self, web_client):
        response = web_client.get(
            "/auth/login/github",
            params={"return_url": "/reports"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        assert location.netloc == "github.com"
        params = {k: v[0] for k, v in parse_qs(location.query).items()}
        assert params["client_id"] == "test-github-id"
        state = decode_state(params["state"])
        assert state.provider_name == "GitHub"
        assert state.return_url == "/reports"
        assert state.additional_data == {"flow": "signin"}

    def test_offsite_return_url_is_replaced(self, web_client):
        response = web_client.get(
            "/auth/login/google",
            params={"return_url": "//evil.example.com"},
            follow_redirects=False,
        )

        params = parse_qs(urlparse(response.headers["location"]).query)
        assert decode_state(params["state"][0]).return_url == "/dashboard"

    def test_unknown_provider_returns_404(self, web_client):
        response = web_client.get("/auth/login/myspace", follow_redirects=False)

        assert response.status_code == 404


class TestTokenEndpoint:
    """Tests for POST /auth/token."""

    def test_requires_authentication(self, web_client):
        response = web_client.post("/auth/token")

        assert response.status_code == 401

    def test_issues_token_with_default_lifetime(self, web_client, bearer, issuer):
        response = web_client.post("/auth/token", headers=bearer)

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "Bearer"
        assert issuer.verify(data["access_token"]).email == "ada@example.com"
        expires_at = datetime.fromisoformat(data["expires_at"])
        expected = datetime.now(UTC) + issuer.config.default_duration
        assert abs((expires_at - expected).total_seconds()) < 5

    def test_issues_token_with_requested_lifetime(self, web_client, bearer):
        response = web_client.post("/auth/token", headers=bearer, json={"minutes": 5})

        expires_at = datetime.fromisoformat(response.json()["expires_at"])
        expected = datetime.now(UTC) + timedelta(minutes=5)
        assert abs((expires_at - expected).total_seconds()) < 5

    @pytest.mark.parametrize("minutes", [0, -1, 24 * 60 + 1])
    def test_rejects_out_of_range_lifetime(self, web_client, bearer, minutes):
        response = web_client.post(
            "/auth/token", headers=bearer, json={"minutes": minutes}
        )

        assert response.status_code == 422


class TestMeEndpoint:
    """Tests for GET /auth/me."""

    def test_bearer_header(self, web_client, bearer):
        response = web_client.get("/auth/me", headers=bearer)

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "ada@example.com"
        assert set(data["roles"]) == {"Administrator", "Editor"}

    def test_session_cookie(self, web_client, issuer, principal):
        web_client.cookies.set("session", issuer.issue(principal).token)

        response = web_client.get("/auth/me")

        assert response.status_code == 200
        assert response.json()["provider_key"] == "google-user-1"

    def test_expired_token_is_rejected(self, web_client, issuer, principal):
        token = issuer.issue(
            principal,
            duration=timedelta(minutes=1),
            now=datetime.now(UTC) - timedelta(hours=1),
        ).token

        response = web_client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_garbage_token_is_rejected(self, web_client):
        response = web_client.get(
            "/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401


class TestLogout:
    """Tests for POST /auth/logout."""

    def test_clears_session_cookie(self, web_client):
        response = web_client.post("/auth/logout")

        assert response.status_code == 200
        assert response.headers["set-cookie"].startswith("session=")
        assert "Max-Age=0" in response.headers["set-cookie"]


class TestDashboard:
    """Tests for GET /dashboard."""

    def test_requires_authentication(self, web_client):
        response = web_client.get("/dashboard")

        assert response.status_code == 401

    def test_returns_user(self, web_client, bearer):
        response = web_client.get("/dashboard", headers=bearer)

        assert response.status_code == 200
        user = response.json()["user"]
        assert user == {
            "provider": "google",
            "email": "ada@example.com",
            "name": "Ada Lovelace",
            "roles": ["Administrator", "Editor"],
        }
