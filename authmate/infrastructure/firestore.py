"""
Firestore settings and the shared async client.

Connection storage moves to Firestore only when a project is known and
tokens can be encrypted at rest; see is_connection_storage_configured().
"""

import logging
import os
from dataclasses import dataclass

from google.cloud.firestore_v1 import AsyncClient

from authmate.core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FirestoreSettings:
    """
    Firestore settings.

    Environment variables:
    - GCP_PROJECT_ID (or GOOGLE_CLOUD_PROJECT): project holding the database
    - FIRESTORE_DATABASE: database id (default "(default)")
    - FIRESTORE_EMULATOR_HOST: read by the client library itself; logged here
    """

    project_id: str | None
    database: str = "(default)"
    emulator_host: str | None = None

    @classmethod
    def from_env(cls) -> "FirestoreSettings":
        return cls(
            project_id=os.getenv("GCP_PROJECT_ID") or os.getenv("GOOGLE_CLOUD_PROJECT"),
            database=os.getenv("FIRESTORE_DATABASE", "(default)"),
            emulator_host=os.getenv("FIRESTORE_EMULATOR_HOST"),
        )


def is_connection_storage_configured() -> bool:
    """True when both a project and TOKEN_ENCRYPTION_KEY are set."""
    return bool(FirestoreSettings.from_env().project_id) and bool(
        os.getenv("TOKEN_ENCRYPTION_KEY")
    )


_firestore_client: AsyncClient | None = None


def get_firestore_client() -> AsyncClient:
    """
    Get the Firestore async client singleton.

    Raises:
        ConfigurationError: If no project id is configured
    """
    global _firestore_client
    if _firestore_client is not None:
        return _firestore_client

    settings = FirestoreSettings.from_env()
    if not settings.project_id:
        raise ConfigurationError(
            "GCP_PROJECT_ID or GOOGLE_CLOUD_PROJECT must be set for connection storage"
        )

    _firestore_client = AsyncClient(project=settings.project_id, database=settings.database)
    logger.info(
        "Firestore client ready",
        extra={
            "project": settings.project_id,
            "database": settings.database,
            "emulator": settings.emulator_host,
        },
    )
    return _firestore_client


def close_firestore_client() -> None:
    """Close and forget the client; called from the app lifespan on shutdown."""
    global _firestore_client
    if _firestore_client is None:
        return
    _firestore_client.close()
    _firestore_client = None
    logger.info("Firestore client closed")
