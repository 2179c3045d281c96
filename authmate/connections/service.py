"""
Connection lifecycle management.

Persists tokens per (owner, provider), detects expiry and performs
caller-triggered refresh-token exchanges. Writes go through the repository's
version check; a lost race re-reads and reapplies the change.
"""

import logging
from datetime import UTC, datetime

from authmate.connections.models import Connection
from authmate.connections.repository import (
    ConnectionRepository,
    get_connection_repository,
)
from authmate.core.domain import TokenResponse
from authmate.core.exceptions import (
    ConcurrencyConflictError,
    ConnectionNotFoundError,
    NoRefreshTokenError,
)
from authmate.oauth.client import OAuthHttpClient
from authmate.oauth.config import ProviderConfig, get_oauth_settings


logger = logging.getLogger(__name__)

MAX_UPSERT_ATTEMPTS = 3


class ConnectionManager:
    """Owns Connection records: create, update in place, refresh, delete."""

    def __init__(
        self,
        repository: ConnectionRepository,
        http_client: OAuthHttpClient | None = None,
    ):
        self.repository = repository
        self.http_client = http_client or OAuthHttpClient()

    async def upsert(
        self,
        owner_identity: str,
        provider_name: str,
        token_response: TokenResponse,
        now: datetime | None = None,
    ) -> Connection:
        """
        Create or update the connection for (owner, provider).

        An existing connection is overwritten in place with its version
        incremented.

        Raises:
            ConcurrencyConflictError: If every attempt lost a race
        """
        for attempt in range(1, MAX_UPSERT_ATTEMPTS + 1):
            existing = await self.repository.get(owner_identity, provider_name)
            if existing is None:
                connection = Connection.from_token_response(
                    owner_identity, provider_name, token_response, now=now
                )
                expected_version = 0
            else:
                connection = existing.apply_token_response(token_response, now=now)
                expected_version = existing.version

            try:
                return await self.repository.save(connection, expected_version)
            except ConcurrencyConflictError:
                logger.warning(
                    f"Connection write conflict (attempt {attempt}/{MAX_UPSERT_ATTEMPTS})",
                    extra={"owner": owner_identity, "provider": provider_name},
                )

        raise ConcurrencyConflictError(
            f"Could not save {provider_name} connection for {owner_identity} "
            f"after {MAX_UPSERT_ATTEMPTS} attempts"
        )

    async def get_active(
        self, owner_identity: str, provider_name: str
    ) -> Connection | None:
        """Get the stored connection for (owner, provider), if any."""
        return await self.repository.get(owner_identity, provider_name)

    def is_expired(self, connection: Connection, now: datetime | None = None) -> bool:
        """True once now >= expires_at_utc."""
        return connection.is_expired(now or datetime.now(UTC))

    async def refresh(
        self,
        config: ProviderConfig,
        connection: Connection,
        now: datetime | None = None,
    ) -> Connection:
        """
        Exchange the connection's refresh token and store the new tokens.

        Raises:
            NoRefreshTokenError: If the connection has no refresh token; no
                request is made
            TokenExchangeFailedError: If the token endpoint rejects the refresh
        """
        if not connection.refresh_token:
            raise NoRefreshTokenError(
                f"{connection.provider_name} connection for "
                f"{connection.owner_identity} has no refresh token"
            )

        token_response = await self.http_client.refresh(config, connection.refresh_token)
        refreshed = await self.upsert(
            connection.owner_identity,
            connection.provider_name,
            token_response,
            now=now,
        )
        logger.info(
            f"Refreshed {connection.provider_name} connection",
            extra={"owner": connection.owner_identity, "version": refreshed.version},
        )
        return refreshed

    async def list_connections(self, owner_identity: str) -> list[Connection]:
        """All connections of an owner, ordered by provider name."""
        connections = await self.repository.list_for_owner(owner_identity)
        return sorted(connections, key=lambda c: c.provider_name.lower())

    async def delete(self, owner_identity: str, provider_name: str) -> None:
        """
        Remove a connection. Connections are only ever deleted explicitly.

        Raises:
            ConnectionNotFoundError: If there is nothing to delete
        """
        deleted = await self.repository.delete(owner_identity, provider_name)
        if not deleted:
            raise ConnectionNotFoundError(
                f"No {provider_name} connection for {owner_identity}"
            )


def get_connection_manager() -> ConnectionManager:
    """Build a manager over the configured repository."""
    return ConnectionManager(
        get_connection_repository(),
        OAuthHttpClient(timeout=get_oauth_settings().http_timeout),
    )
