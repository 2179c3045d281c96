"""
Connection domain model.

A Connection is this system's record of a stored OAuth grant for one
(owner, provider) pair. It is created on the first successful exchange,
updated in place on refresh, and removed only on explicit disconnect.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from authmate.core.domain import TokenResponse


def _new_id() -> str:
    return uuid4().hex


class Connection(BaseModel):
    """Stored access/refresh tokens for an owner at a provider."""

    id: str = Field(default_factory=_new_id, description="Opaque connection id")
    owner_identity: str = Field(min_length=1, description="Owner (user email)")
    provider_name: str = Field(min_length=1, description="Provider config name")
    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    scope: str | None = None
    id_token: str | None = None
    issued_at_utc: datetime
    expires_at_utc: datetime | None = Field(
        default=None, description="None when the provider sent no expiry"
    )
    version: int = Field(
        default=1, description="Optimistic concurrency counter; 0 means not stored"
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_token_response(
        cls,
        owner_identity: str,
        provider_name: str,
        token_response: TokenResponse,
        now: datetime | None = None,
    ) -> "Connection":
        """
        Create a connection from a successful exchange.

        The issue time is backdated by a second so the stored expiry never
        outlives the provider's.
        """
        now = now or datetime.now(UTC)
        issued_at = now - timedelta(seconds=1)
        return cls(
            owner_identity=owner_identity,
            provider_name=provider_name,
            access_token=token_response.access_token,
            refresh_token=token_response.refresh_token,
            token_type=token_response.token_type,
            scope=token_response.scope,
            id_token=token_response.id_token,
            issued_at_utc=issued_at,
            expires_at_utc=token_response.expires_at(issued_at),
            created_at=now,
            updated_at=now,
        )

    def apply_token_response(
        self, token_response: TokenResponse, now: datetime | None = None
    ) -> "Connection":
        """
        Return a copy updated with new tokens, version incremented.

        A response without a refresh token keeps the stored one.
        """
        now = now or datetime.now(UTC)
        issued_at = now - timedelta(seconds=1)
        return self.model_copy(
            update={
                "access_token": token_response.access_token,
                "refresh_token": token_response.refresh_token or self.refresh_token,
                "token_type": token_response.token_type,
                "scope": token_response.scope or self.scope,
                "id_token": token_response.id_token or self.id_token,
                "issued_at_utc": issued_at,
                "expires_at_utc": token_response.expires_at(issued_at),
                "updated_at": now,
                "version": self.version + 1,
            }
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the access token is expired (never, without an expiry)."""
        if self.expires_at_utc is None:
            return False
        return (now or datetime.now(UTC)) >= self.expires_at_utc

    @property
    def key(self) -> tuple[str, str]:
        """(owner, provider) identity of the connection, case-normalized."""
        return connection_key(self.owner_identity, self.provider_name)


def connection_key(owner_identity: str, provider_name: str) -> tuple[str, str]:
    """Normalize an (owner, provider) pair for lookups."""
    return owner_identity.lower(), provider_name.lower()
