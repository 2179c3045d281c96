"""
FastAPI dependencies for authentication.

The current principal is read from the session cookie or an
Authorization: Bearer header and verified by the bearer token issuer.
"""

import logging
from typing import Annotated

from fastapi import Cookie, Depends, Header, HTTPException, status

from authmate.core.domain import SessionPrincipal
from authmate.core.exceptions import DecodeError, InvalidTokenError
from authmate.core.tokens import BearerTokenIssuer, get_token_issuer


logger = logging.getLogger(__name__)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials:
        return None
    return credentials.strip()


async def get_optional_principal(
    session: Annotated[str | None, Cookie()] = None,
    authorization: Annotated[str | None, Header()] = None,
    issuer: BearerTokenIssuer = Depends(get_token_issuer),
) -> SessionPrincipal | None:
    """The signed-in principal, or None when no valid credential was sent."""
    token = _bearer_token(authorization) or session
    if not token:
        return None

    validation = issuer.validate(token)
    if not validation.is_valid:
        logger.warning(f"Session validation failed: {validation.error}")
        return None
    return validation.principal


async def get_current_principal(
    session: Annotated[str | None, Cookie()] = None,
    authorization: Annotated[str | None, Header()] = None,
    issuer: BearerTokenIssuer = Depends(get_token_issuer),
) -> SessionPrincipal:
    """
    Dependency to get the current authenticated principal.

    Raises:
        HTTPException: 401 if not authenticated
    """
    token = _bearer_token(authorization) or session
    if not token:
        logger.warning("No session cookie or bearer token provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return issuer.verify(token)
    except (InvalidTokenError, DecodeError) as e:
        logger.warning(f"Session validation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def owner_identity(principal: SessionPrincipal) -> str:
    """Owner key for a principal's connections: email, else provider subject."""
    return principal.email or f"{principal.provider_type}:{principal.provider_key}"


CurrentPrincipal = Annotated[SessionPrincipal, Depends(get_current_principal)]
OptionalPrincipal = Annotated[SessionPrincipal | None, Depends(get_optional_principal)]
TokenIssuer = Annotated[BearerTokenIssuer, Depends(get_token_issuer)]
