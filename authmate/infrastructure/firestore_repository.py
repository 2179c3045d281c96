"""
Firestore implementation of ConnectionRepository.

Stores connections in Firestore with encrypted token storage.
This is a driven adapter that implements the ConnectionRepository interface.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from google.api_core.exceptions import AlreadyExists, FailedPrecondition
from google.cloud.firestore_v1 import AsyncClient

from authmate.connections.models import Connection
from authmate.core.exceptions import ConcurrencyConflictError
from authmate.infrastructure.encryption import TokenCipher, get_token_cipher


logger = logging.getLogger(__name__)


class FirestoreConnectionRepository:
    """
    Firestore implementation of ConnectionRepository.

    Data model:
    - Collection: users
      - Document ID: {owner_identity lower-cased}
      - Subcollection: connections
        - Document ID: {provider_name lower-cased}
        - Fields: id, owner_identity, provider_name, access_token (encrypted),
                  refresh_token (encrypted), id_token (encrypted), token_type,
                  scope, issued_at_utc, expires_at_utc, version, created_at,
                  updated_at

    Writes are guarded twice: the stored version must equal the expected
    one, and the document must not have changed since it was read
    (create() for new documents, last_update_time precondition otherwise).
    """

    def __init__(self, db: AsyncClient, cipher: TokenCipher | None = None):
        """
        Initialize Firestore repository.

        Args:
            db: Firestore async client instance
            cipher: Token cipher (defaults to the TOKEN_ENCRYPTION_KEY singleton)
        """
        self._db = db
        self._users = db.collection("users")
        self._cipher = cipher or get_token_cipher()

    def _document(self, owner_identity: str, provider_name: str):
        return (
            self._users.document(owner_identity.lower())
            .collection("connections")
            .document(provider_name.lower())
        )

    async def get(self, owner_identity: str, provider_name: str) -> Connection | None:
        doc = await self._document(owner_identity, provider_name).get()
        if not doc.exists:
            return None

        data = doc.to_dict()
        if data is None:
            return None
        return self._from_document(data)

    async def save(self, connection: Connection, expected_version: int) -> Connection:
        doc_ref = self._document(connection.owner_identity, connection.provider_name)
        snapshot = await doc_ref.get()
        data = self._to_document(connection)

        if not snapshot.exists:
            if expected_version != 0:
                raise ConcurrencyConflictError(
                    f"Connection {connection.provider_name} for "
                    f"{connection.owner_identity} was deleted concurrently"
                )
            try:
                await doc_ref.create(data)
            except AlreadyExists as e:
                raise ConcurrencyConflictError(
                    f"Connection {connection.provider_name} for "
                    f"{connection.owner_identity} was created concurrently"
                ) from e
        else:
            stored_version = (snapshot.to_dict() or {}).get("version", 0)
            if stored_version != expected_version:
                raise ConcurrencyConflictError(
                    f"Connection {connection.provider_name} for "
                    f"{connection.owner_identity} is at version {stored_version}, "
                    f"expected {expected_version}"
                )
            try:
                await doc_ref.update(
                    data,
                    option=self._db.write_option(last_update_time=snapshot.update_time),
                )
            except FailedPrecondition as e:
                raise ConcurrencyConflictError(
                    f"Connection {connection.provider_name} for "
                    f"{connection.owner_identity} was modified concurrently"
                ) from e

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
        doc_ref = self._document(owner_identity, provider_name)
        snapshot = await doc_ref.get()
        if not snapshot.exists:
            return False

        await doc_ref.delete()
        logger.info(f"Deleted {provider_name} connection for {owner_identity}")
        return True

    async def list_for_owner(self, owner_identity: str) -> list[Connection]:
        connections_ref = self._users.document(owner_identity.lower()).collection(
            "connections"
        )
        connections = []
        async for doc in connections_ref.stream():
            data = doc.to_dict()
            if data is None:
                continue
            connections.append(self._from_document(data))
        return connections

    def _to_document(self, connection: Connection) -> dict[str, Any]:
        return {
            "id": connection.id,
            "owner_identity": connection.owner_identity,
            "provider_name": connection.provider_name,
            "access_token": self._cipher.encrypt(connection.access_token),
            "refresh_token": self._cipher.encrypt_optional(connection.refresh_token),
            "id_token": self._cipher.encrypt_optional(connection.id_token),
            "token_type": connection.token_type,
            "scope": connection.scope,
            "issued_at_utc": connection.issued_at_utc,
            "expires_at_utc": connection.expires_at_utc,
            "version": connection.version,
            "created_at": connection.created_at,
            "updated_at": connection.updated_at,
        }

    def _from_document(self, data: dict[str, Any]) -> Connection:
        return Connection(
            id=data["id"],
            owner_identity=data["owner_identity"],
            provider_name=data["provider_name"],
            access_token=self._cipher.decrypt(data["access_token"]),
            refresh_token=self._cipher.decrypt_optional(data.get("refresh_token")),
            id_token=self._cipher.decrypt_optional(data.get("id_token")),
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope"),
            issued_at_utc=data["issued_at_utc"],
            expires_at_utc=data.get("expires_at_utc"),
            version=data.get("version", 0),
            created_at=data.get("created_at", datetime.now(UTC)),
            updated_at=data.get("updated_at", datetime.now(UTC)),
        )
