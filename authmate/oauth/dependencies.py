"""
FastAPI dependencies for OAuth endpoints.

Provides dependency injection for the provider registry, connection
manager and per-request authorization flows.
"""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status

from authmate.connections.service import ConnectionManager, get_connection_manager
from authmate.core.exceptions import UnknownProviderError
from authmate.core.tokens import BearerTokenIssuer, get_token_issuer
from authmate.oauth.config import ProviderConfig
from authmate.oauth.flow import AuthorizationCodeFlow
from authmate.oauth.registry import ProviderRegistry, get_provider_registry
from authmate.users.service import AuthenticationService, get_authentication_service


logger = logging.getLogger(__name__)


def get_registry() -> ProviderRegistry:
    """Provide ProviderRegistry dependency."""
    return get_provider_registry()


def get_connections() -> ConnectionManager:
    """Provide ConnectionManager dependency."""
    return get_connection_manager()


def get_flow(
    registry: Annotated[ProviderRegistry, Depends(get_registry)],
    connections: Annotated[ConnectionManager, Depends(get_connections)],
    issuer: Annotated[BearerTokenIssuer, Depends(get_token_issuer)],
) -> AuthorizationCodeFlow:
    """A fresh flow per request."""
    return AuthorizationCodeFlow(registry, connections, issuer=issuer)


async def validate_provider(
    provider: str,
    registry: Annotated[ProviderRegistry, Depends(get_registry)],
) -> ProviderConfig:
    """
    Resolve the provider named in the path.

    Raises:
        HTTPException: 404 if the provider is not configured
    """
    try:
        return registry.resolve(provider)
    except UnknownProviderError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown provider: {provider}. Configured: {registry.names()}",
        ) from e


# Type aliases for cleaner dependency injection
ValidProvider = Annotated[ProviderConfig, Depends(validate_provider)]
Flow = Annotated[AuthorizationCodeFlow, Depends(get_flow)]
Connections = Annotated[ConnectionManager, Depends(get_connections)]
Authenticator = Annotated[AuthenticationService, Depends(get_authentication_service)]
