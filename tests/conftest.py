"""
Shared test configuration and fixtures.
"""

import os
from typing import Any
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from authmate.connections.repository import (
    InMemoryConnectionRepository,
    reset_connection_repository,
)
from authmate.connections.service import ConnectionManager
from authmate.core.domain import TokenResponse
from authmate.core.tokens import BearerTokenConfig, BearerTokenIssuer
from authmate.oauth.client import OAuthHttpClient
from authmate.oauth.config import ProviderConfig
from authmate.oauth.registry import ProviderRegistry
from authmate.users.store import reset_user_store

TEST_TOKEN_SECRET = "test-signing-secret-with-enough-entropy-0123456789"
# Valid Fernet key for testing
TEST_ENCRYPTION_KEY = "3xpo7t61pLEqmOiHEZs4qIvrPjieKmO1Pg5OSdwDRAI="
BASE_URL = "http://testserver"

# Set environment variables before importing app
with patch.dict(
    os.environ,
    {
        "BASE_URL": BASE_URL,
        "AUTHMATE_TOKEN_SECRET": TEST_TOKEN_SECRET,
    },
):
    from authmate.main import app

client = TestClient(app)


def make_google_config() -> ProviderConfig:
    return ProviderConfig.google(
        "test-google-id",
        "test-google-secret",
        f"{BASE_URL}/oauth/google/callback",
        ["openid", "email", "profile"],
    )


def make_github_config() -> ProviderConfig:
    return ProviderConfig.github(
        "test-github-id",
        "test-github-secret",
        f"{BASE_URL}/oauth/github/callback",
        ["read:user", "user:email"],
    )


class FakeOAuthHttpClient(OAuthHttpClient):
    """
    OAuthHttpClient returning canned results and recording calls.

    Set token_error / profile_error to an exception to make the call fail.
    """

    def __init__(self):
        super().__init__(timeout=1.0)
        self.token_response = TokenResponse(
            access_token="fake-access-token",
            refresh_token="fake-refresh-token",
            expires_in=3600,
            scope="openid email profile",
        )
        self.user_info: dict[str, Any] = {
            "sub": "google-user-1",
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "picture": "https://example.com/ada.png",
        }
        self.token_error: Exception | None = None
        self.profile_error: Exception | None = None
        self.calls: list[tuple[str, str]] = []

    async def exchange_code(self, config, code):
        self.calls.append(("exchange_code", code))
        if self.token_error:
            raise self.token_error
        return self.token_response

    async def refresh(self, config, refresh_token):
        self.calls.append(("refresh", refresh_token))
        if self.token_error:
            raise self.token_error
        return self.token_response

    async def fetch_user_info(self, config, access_token):
        self.calls.append(("fetch_user_info", access_token))
        if self.profile_error:
            raise self.profile_error
        return self.user_info


@pytest.fixture(autouse=True)
def reset_singletons():
    """Clean user directory and connection storage between tests."""
    reset_user_store()
    reset_connection_repository()
    yield
    reset_user_store()
    reset_connection_repository()


@pytest.fixture
def google_config() -> ProviderConfig:
    return make_google_config()


@pytest.fixture
def registry() -> ProviderRegistry:
    return ProviderRegistry.from_configs([make_google_config(), make_github_config()])


@pytest.fixture
def repository() -> InMemoryConnectionRepository:
    return InMemoryConnectionRepository()


@pytest.fixture
def fake_http() -> FakeOAuthHttpClient:
    return FakeOAuthHttpClient()


@pytest.fixture
def connections(repository) -> ConnectionManager:
    return ConnectionManager(repository, OAuthHttpClient(timeout=5.0))


@pytest.fixture
def issuer() -> BearerTokenIssuer:
    return BearerTokenIssuer(BearerTokenConfig(secret=TEST_TOKEN_SECRET))
