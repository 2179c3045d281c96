"""
Tests for the provider registry and provider configuration loading.
"""

import json
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from authmate.core.exceptions import ConfigurationError, UnknownProviderError
from authmate.oauth.config import (
    OAuthSettings,
    ProviderConfig,
    load_provider_file,
    parse_provider_configs,
)
from authmate.oauth.registry import (
    ProviderRegistry,
    get_provider_registry,
    reset_provider_registry,
)

from tests.conftest import make_github_config, make_google_config


class TestProviderRegistry:
    """Tests for ProviderRegistry."""

    def test_resolve_is_case_insensitive(self, registry):
        assert registry.resolve("GOOGLE") is registry.resolve("google")
        assert registry.resolve("Google").name == "Google"

    def test_resolve_unknown_raises(self, registry):
        with pytest.raises(UnknownProviderError) as exc_info:
            registry.resolve("unknown")

        assert exc_info.value.provider_name == "unknown"

    def test_resolve_empty_name_raises(self, registry):
        with pytest.raises(UnknownProviderError):
            registry.resolve("")

    def test_register_replaces_existing(self):
        registry = ProviderRegistry()
        registry.register(make_google_config())
        replacement = make_google_config().model_copy(update={"client_id": "new-id"})

        registry.register(replacement)

        assert len(registry) == 1
        assert registry.resolve("google").client_id == "new-id"

    def test_duplicate_names_fail_at_load(self):
        duplicate = make_google_config().model_copy(update={"name": "GOOGLE"})

        with pytest.raises(ConfigurationError, match="Duplicate"):
            ProviderRegistry.from_configs([make_google_config(), duplicate])

    def test_contains_and_names(self, registry):
        assert "github" in registry
        assert "GitHub" in registry
        assert "amazon" not in registry
        assert sorted(registry.names()) == ["GitHub", "Google"]


class TestProviderConfig:
    """Tests for ProviderConfig."""

    def test_config_is_immutable(self):
        config = make_google_config()

        with pytest.raises(ValidationError):
            config.client_id = "changed"

    def test_scope_is_space_joined_in_order(self):
        config = make_github_config()

        assert config.scope == "read:user user:email"

    def test_scopes_accept_a_string(self):
        config = ProviderConfig(
            name="Custom",
            client_id="id",
            client_secret="secret",
            authorization_endpoint="https://auth.example.com/authorize",
            token_endpoint="https://auth.example.com/token",
            user_info_endpoint="https://auth.example.com/userinfo",
            redirect_uri="http://testserver/oauth/custom/callback",
            scopes="openid, email profile",
        )

        assert config.scopes == ["openid", "email", "profile"]

    def test_google_requests_offline_access(self):
        config = make_google_config()

        assert config.token_endpoint == "https://oauth2.googleapis.com/token"
        assert config.authorize_params["access_type"] == "offline"


class TestProviderConfigParsing:
    """Tests for parsing provider configs from JSON."""

    ENTRY = {
        "client_id": "id",
        "client_secret": "secret",
        "authorization_endpoint": "https://www.amazon.com/ap/oa",
        "token_endpoint": "https://api.amazon.com/auth/o2/token",
        "user_info_endpoint": "https://api.amazon.com/user/profile",
        "redirect_uri": "http://testserver/oauth/amazon/callback",
        "scopes": ["profile"],
    }

    def test_parse_list(self):
        configs = parse_provider_configs([{"name": "Amazon", **self.ENTRY}])

        assert [c.name for c in configs] == ["Amazon"]

    def test_parse_mapping_uses_key_as_name(self):
        configs = parse_provider_configs({"Amazon": self.ENTRY})

        assert configs[0].name == "Amazon"
        assert configs[0].scopes == ["profile"]

    def test_parse_invalid_entry_raises(self):
        with pytest.raises(ConfigurationError, match="Invalid provider"):
            parse_provider_configs([{"name": "Broken"}])

    def test_parse_wrong_shape_raises(self):
        with pytest.raises(ConfigurationError):
            parse_provider_configs("amazon")

    def test_load_provider_file(self, tmp_path):
        path = tmp_path / "providers.json"
        path.write_text(json.dumps({"Amazon": self.ENTRY}))

        configs = load_provider_file(path)

        assert configs[0].token_endpoint == "https://api.amazon.com/auth/o2/token"

    def test_load_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_provider_file(tmp_path / "missing.json")


class TestOAuthSettings:
    """Tests for OAuthSettings.from_env."""

    def test_configures_providers_with_credentials_only(self):
        env = {
            "BASE_URL": "https://auth.example.com/",
            "GOOGLE_CLIENT_ID": "gid",
            "GOOGLE_CLIENT_SECRET": "gsecret",
            "GITHUB_CLIENT_ID": "only-id",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = OAuthSettings.from_env()

        assert [p.name for p in settings.providers] == ["Google"]
        google = settings.providers[0]
        assert google.redirect_uri == "https://auth.example.com/oauth/google/callback"
        assert google.scopes == ["openid", "email", "profile"]
        assert settings.http_timeout == 5.0

    def test_scope_and_timeout_overrides(self):
        env = {
            "BASE_URL": "http://localhost:8080",
            "GITHUB_CLIENT_ID": "id",
            "GITHUB_CLIENT_SECRET": "secret",
            "GITHUB_SCOPES": "repo read:user",
            "OAUTH_HTTP_TIMEOUT": "2.5",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = OAuthSettings.from_env()

        assert settings.providers[0].scopes == ["repo", "read:user"]
        assert settings.http_timeout == 2.5

    def test_providers_file_is_loaded(self, tmp_path):
        path = tmp_path / "providers.json"
        path.write_text(json.dumps({"Amazon": TestProviderConfigParsing.ENTRY}))

        with patch.dict(os.environ, {"OAUTH_PROVIDERS_FILE": str(path)}, clear=True):
            settings = OAuthSettings.from_env()

        assert [p.name for p in settings.providers] == ["Amazon"]

    def test_callback_url(self):
        settings = OAuthSettings(base_url="http://localhost:8080")

        assert (
            settings.get_callback_url("GitHub")
            == "http://localhost:8080/oauth/github/callback"
        )


class TestRegistrySingleton:
    """Tests for the registry singleton."""

    def test_registry_built_from_settings(self):
        settings = OAuthSettings(base_url="http://testserver", providers=[make_google_config()])
        reset_provider_registry()
        try:
            with patch("authmate.oauth.registry.get_oauth_settings", return_value=settings):
                registry = get_provider_registry()

            assert "google" in registry
            assert get_provider_registry() is registry
        finally:
            reset_provider_registry()
