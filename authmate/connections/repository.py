"""
Connection repository interface and implementations.

Defines the port (interface) for connection persistence.
Includes an in-memory implementation for testing and development.
Firestore implementation is available when configured.
"""

import logging
from typing import Protocol

from authmate.connections.models import Connection, connection_key
from authmate.core.exceptions import ConcurrencyConflictError
from authmate.infrastructure.firestore import is_connection_storage_configured


logger = logging.getLogger(__name__)


class ConnectionRepository(Protocol):
    """
    Protocol defining the connection repository interface.

    Writes are compare-and-set on the connection version: the caller passes
    the version it read, and the write fails if the stored version moved.
    """

    async def get(self, owner_identity: str, provider_name: str) -> Connection | None:
        """
        Get the connection for an (owner, provider) pair.

        Returns:
            Connection if found, None otherwise
        """
        ...

    async def save(self, connection: Connection, expected_version: int) -> Connection:
        """
        Store a connection if the stored version equals expected_version.

        expected_version is 0 when the caller saw no existing connection;
        stored connections start at version 1, so 0 never matches a stored one.

        Returns:
            The stored connection

        Raises:
            ConcurrencyConflictError: If the stored version differs
        """
        ...

    async def delete(self, owner_identity: str, provider_name: str) -> bool:
        """
        Delete a connection.

        Returns:
            True if deleted, False if not found
        """
        ...

    async def list_for_owner(self, owner_identity: str) -> list[Connection]:
        """List all connections of an owner."""
        ...


class InMemoryConnectionRepository(ConnectionRepository):
    """
    In-memory implementation of ConnectionRepository.

    Useful for testing and local development without Firestore.
    Data is lost when the application restarts. The compare-and-set in save
    never awaits, so it is atomic on the event loop.
    """

    def __init__(self):
        self._connections: dict[tuple[str, str], Connection] = {}

    async def get(self, owner_identity: str, provider_name: str) -> Connection | None:
        return self._connections.get(connection_key(owner_identity, provider_name))

    async def save(self, connection: Connection, expected_version: int) -> Connection:
        current = self._connections.get(connection.key)
        current_version = current.version if current is not None else 0
        if current_version != expected_version:
            raise ConcurrencyConflictError(
                f"Connection {connection.provider_name} for {connection.owner_identity} "
                f"is at version {current_version}, expected {expected_version}"
            )

        self._connections[connection.key] = connection
        logger.info(
            f"Saved {connection.provider_name} connection",
            extra={
                "owner": connection.owner_identity,
                "provider": connection.provider_name,
                "version": connection.version,
            },
        )
        return connection

    async def delete(self, owner_identity: str, provider_name: str) -> bool:
        key = connection_key(owner_identity, provider_name)
        if key not in self._connections:
            return False
        del self._connections[key]
        logger.info(f"Deleted {provider_name} connection for {owner_identity}")
        return True

    async def list_for_owner(self, owner_identity: str) -> list[Connection]:
        owner = owner_identity.lower()
        return [c for (o, _), c in self._connections.items() if o == owner]


# Singleton instance for dependency injection
_repository: ConnectionRepository | None = None


def get_connection_repository() -> ConnectionRepository:
    """
    Get the connection repository singleton.

    Returns FirestoreConnectionRepository if Firestore is configured
    (GCP_PROJECT_ID and TOKEN_ENCRYPTION_KEY set).
    Falls back to InMemoryConnectionRepository for testing/development.
    """
    global _repository
    if _repository is None:
        if is_connection_storage_configured():
            try:
                from authmate.infrastructure.firestore import get_firestore_client
                from authmate.infrastructure.firestore_repository import (
                    FirestoreConnectionRepository,
                )

                _repository = FirestoreConnectionRepository(get_firestore_client())
                logger.info("Using Firestore connection repository")
            except Exception as e:
                logger.warning(
                    f"Failed to initialize Firestore, falling back to in-memory: {e}"
                )
                _repository = InMemoryConnectionRepository()
        else:
            logger.info("Using in-memory connection repository")
            _repository = InMemoryConnectionRepository()
    return _repository


def set_connection_repository(repository: ConnectionRepository) -> None:
    """
    Set the connection repository implementation.

    Use this to inject Firestore or mock repositories.
    """
    global _repository
    _repository = repository


def reset_connection_repository() -> None:
    """
    Reset the connection repository singleton.

    Useful for testing to ensure clean state between tests.
    """
    global _repository
    _repository = None
