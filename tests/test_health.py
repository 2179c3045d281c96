"""
Tests for the liveness and readiness endpoints.
"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from authmate.oauth.dependencies import get_registry
from authmate.oauth.registry import ProviderRegistry

from tests.conftest import TEST_ENCRYPTION_KEY, app, client


@pytest.fixture
def health_client(registry):
    app.dependency_overrides[get_registry] = lambda: registry
    yield TestClient(app)
    app.dependency_overrides.pop(get_registry, None)


def test_root_reports_service_and_time():
    response = client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "authmate"
    assert datetime.fromisoformat(data["timestamp"]).tzinfo is not None


def test_health_lists_configured_providers(health_client, monkeypatch):
    monkeypatch.delenv("GCP_PROJECT_ID", raising=False)
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)

    data = health_client.get("/health").json()

    assert data == {
        "status": "healthy",
        "providers": ["github", "google"],
        "connection_storage": "memory",
    }


def test_health_reports_firestore_storage(health_client, monkeypatch):
    monkeypatch.setenv("GCP_PROJECT_ID", "test-project")
    monkeypatch.setenv("TOKEN_ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)

    assert health_client.get("/health").json()["connection_storage"] == "firestore"


def test_health_with_no_providers():
    app.dependency_overrides[get_registry] = ProviderRegistry
    try:
        response = client.get("/health")
    finally:
        app.dependency_overrides.pop(get_registry, None)

    assert response.status_code == 200
    assert response.json()["providers"] == []
