"""
OAuth2 provider configuration.

Each provider (Google, GitHub, etc.) is described by an immutable
ProviderConfig. Built-in factories carry the well-known endpoints; the
credentials come from environment variables, and further providers can be
declared in a JSON file.
"""

import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from authmate.core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


class ProviderConfig(BaseModel):
    """
    Endpoint and credential configuration for one OAuth provider.

    Immutable once loaded. The registry keys configs by name,
    case-insensitively.
    """

    name: str = Field(min_length=1)
    client_id: str
    client_secret: str
    authorization_endpoint: str
    token_endpoint: str
    user_info_endpoint: str
    redirect_uri: str
    scopes: list[str] = Field(default_factory=list)
    authorize_params: dict[str, str] = Field(
        default_factory=dict,
        description="Extra query parameters for the authorization URL",
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("scopes", mode="before")
    @classmethod
    def split_scopes(cls, v: Any) -> Any:
        """Accept a space- or comma-separated string as well as a list."""
        if isinstance(v, str):
            return [s for s in v.replace(",", " ").split() if s]
        return v

    @property
    def key(self) -> str:
        """Registry key (lower-cased name)."""
        return self.name.lower()

    @property
    def scope(self) -> str:
        """Scopes joined for the authorization request."""
        return " ".join(self.scopes)

    @classmethod
    def google(
        cls, client_id: str, client_secret: str, redirect_uri: str, scopes: list[str]
    ) -> "ProviderConfig":
        """Google, requesting offline access so a refresh token is returned."""
        return cls(
            name="Google",
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scopes=scopes,
            authorization_endpoint="https://accounts.google.com/o/oauth2/v2/auth",
            token_endpoint="https://oauth2.googleapis.com/token",
            user_info_endpoint="https://openidconnect.googleapis.com/v1/userinfo",
            authorize_params={"access_type": "offline", "prompt": "consent"},
        )

    @classmethod
    def microsoft(
        cls, client_id: str, client_secret: str, redirect_uri: str, scopes: list[str]
    ) -> "ProviderConfig":
        return cls(
            name="Microsoft",
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scopes=scopes,
            authorization_endpoint=(
                "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
            ),
            token_endpoint="https://login.microsoftonline.com/common/oauth2/v2.0/token",
            user_info_endpoint="https://graph.microsoft.com/oidc/userinfo",
        )

    @classmethod
    def facebook(
        cls, client_id: str, client_secret: str, redirect_uri: str, scopes: list[str]
    ) -> "ProviderConfig":
        return cls(
            name="Facebook",
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scopes=scopes,
            authorization_endpoint="https://www.facebook.com/v10.0/dialog/oauth",
            token_endpoint="https://graph.facebook.com/v10.0/oauth/access_token",
            user_info_endpoint="https://graph.facebook.com/me?fields=id,name,email,picture",
        )

    @classmethod
    def twitter(
        cls, client_id: str, client_secret: str, redirect_uri: str, scopes: list[str]
    ) -> "ProviderConfig":
        return cls(
            name="Twitter",
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scopes=scopes,
            authorization_endpoint="https://api.twitter.com/oauth/authorize",
            token_endpoint="https://api.twitter.com/oauth/access_token",
            user_info_endpoint=(
                "https://api.twitter.com/1.1/account/verify_credentials.json"
            ),
        )

    @classmethod
    def github(
        cls, client_id: str, client_secret: str, redirect_uri: str, scopes: list[str]
    ) -> "ProviderConfig":
        return cls(
            name="GitHub",
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scopes=scopes,
            authorization_endpoint="https://github.com/login/oauth/authorize",
            token_endpoint="https://github.com/login/oauth/access_token",
            user_info_endpoint="https://api.github.com/user",
        )


ProviderFactory = Callable[[str, str, str, list[str]], ProviderConfig]

# Built-in providers: factory and default scopes
BUILTIN_PROVIDERS: dict[str, tuple[ProviderFactory, list[str]]] = {
    "google": (ProviderConfig.google, ["openid", "email", "profile"]),
    "microsoft": (ProviderConfig.microsoft, ["openid", "email", "profile", "offline_access"]),
    "facebook": (ProviderConfig.facebook, ["email", "public_profile"]),
    "twitter": (ProviderConfig.twitter, ["users.read", "tweet.read"]),
    "github": (ProviderConfig.github, ["read:user", "user:email"]),
}


def parse_provider_configs(data: Any) -> list[ProviderConfig]:
    """
    Parse provider configs from decoded JSON.

    Accepts either a list of config objects or a mapping of name -> config
    (the name key fills in a missing "name" field).

    Raises:
        ConfigurationError: If an entry does not match the config schema
    """
    if isinstance(data, dict):
        entries = [{"name": name, **(entry or {})} for name, entry in data.items()]
    elif isinstance(data, list):
        entries = data
    else:
        raise ConfigurationError("Provider configuration must be a list or mapping")

    configs = []
    for entry in entries:
        try:
            configs.append(ProviderConfig.model_validate(entry))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid provider configuration: {e}") from e
    return configs


def load_provider_file(path: str | Path) -> list[ProviderConfig]:
    """Load provider configs from a JSON file."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read provider file {path}: {e}") from e
    return parse_provider_configs(data)


@dataclass
class OAuthSettings:
    """
    OAuth configuration settings.

    Loaded from environment variables:
    - BASE_URL: public URL of this service (used for redirect URIs)
    - <PROVIDER>_CLIENT_ID / <PROVIDER>_CLIENT_SECRET for built-in providers
    - <PROVIDER>_SCOPES: optional space-separated scope override
    - OAUTH_PROVIDERS_FILE: optional JSON file with more provider configs
    - OAUTH_HTTP_TIMEOUT: upstream call timeout in seconds (default 5)
    """

    base_url: str
    providers: list[ProviderConfig] = field(default_factory=list)
    http_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> "OAuthSettings":
        """Load configuration from environment variables."""
        settings = cls(
            base_url=os.getenv("BASE_URL", "").rstrip("/"),
            http_timeout=float(os.getenv("OAUTH_HTTP_TIMEOUT", "5")),
        )

        for name, (factory, default_scopes) in BUILTIN_PROVIDERS.items():
            prefix = name.upper()
            client_id = os.getenv(f"{prefix}_CLIENT_ID")
            client_secret = os.getenv(f"{prefix}_CLIENT_SECRET")
            if not (client_id and client_secret):
                logger.debug(f"{name} OAuth not configured (missing credentials)")
                continue

            scopes_env = os.getenv(f"{prefix}_SCOPES")
            scopes = scopes_env.split() if scopes_env else list(default_scopes)
            settings.providers.append(
                factory(client_id, client_secret, settings.get_callback_url(name), scopes)
            )
            logger.info(f"Configured {name} OAuth provider")

        providers_file = os.getenv("OAUTH_PROVIDERS_FILE")
        if providers_file:
            settings.providers.extend(load_provider_file(providers_file))
            logger.info(f"Loaded provider configs from {providers_file}")

        return settings

    def get_callback_url(self, provider: str) -> str:
        """Generate callback URL for a provider."""
        return f"{self.base_url}/oauth/{provider.lower()}/callback"


@lru_cache()
def get_oauth_settings() -> OAuthSettings:
    """Get OAuth settings singleton."""
    return OAuthSettings.from_env()
