"""
Core domain models for OAuth sign-in and connections.

These models represent the business domain and are independent of
any infrastructure or delivery mechanism.
"""

from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TokenResponse(BaseModel):
    """
    Token endpoint response (RFC 6749 Section 5.1).

    Produced by exchanging an authorization code or a refresh token.
    Provider-specific extra fields are kept.
    """

    access_token: str = Field(description="OAuth2 access token")
    refresh_token: str | None = Field(
        default=None, description="OAuth2 refresh token for token renewal"
    )
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int | None = Field(
        default=None, description="Seconds until the access token expires"
    )
    scope: str | None = Field(default=None, description="Space-separated granted scopes")
    id_token: str | None = Field(default=None, description="OpenID Connect ID token")

    model_config = ConfigDict(extra="allow")

    def expires_at(self, issued_at: datetime) -> datetime | None:
        """Absolute expiry for a token issued at issued_at, None if it never expires."""
        if self.expires_in is None:
            return None
        return issued_at + timedelta(seconds=self.expires_in)


class SessionPrincipal(BaseModel):
    """
    The signed-in identity.

    Derived from the provider's user-info response plus locally assigned
    roles. Used to mint bearer tokens and session cookies.
    """

    provider_key: str = Field(description="Subject identifier at the provider")
    provider_type: str = Field(description="Provider name (google, github, ...)")
    display_name: str | None = None
    email: str | None = None
    profile_picture_url: str | None = None
    roles: set[str] = Field(default_factory=set)

    def with_roles(self, roles: set[str]) -> "SessionPrincipal":
        """Return a copy carrying the given roles."""
        return self.model_copy(update={"roles": set(roles)})

    def to_claims(self) -> dict[str, Any]:
        """Convert to JWT claims (without registered claims like iss/exp)."""
        claims: dict[str, Any] = {
            "sub": self.provider_key,
            "provider_type": self.provider_type,
            "roles": sorted(self.roles),
        }
        if self.display_name:
            claims["name"] = self.display_name
        if self.email:
            claims["email"] = self.email
        if self.profile_picture_url:
            claims["picture"] = self.profile_picture_url
        return claims

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "SessionPrincipal":
        """Rebuild a principal from validated JWT claims."""
        return cls(
            provider_key=claims["sub"],
            provider_type=claims.get("provider_type", "unknown"),
            display_name=claims.get("name"),
            email=claims.get("email"),
            profile_picture_url=claims.get("picture"),
            roles=set(claims.get("roles", [])),
        )


class SignedToken(BaseModel):
    """A minted bearer token and its expiry."""

    token: str
    token_type: str = "Bearer"
    expires_at: datetime
