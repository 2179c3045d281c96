"""
OAuth2 API endpoints.

- GET /oauth/{provider}/connect - Start a connection flow for the signed-in user
- GET /oauth/{provider}/callback - Complete a sign-in or connection flow
- GET /oauth/connections - List the signed-in user's connections
- POST /oauth/{provider}/refresh - Refresh a connection's access token
- DELETE /oauth/{provider} - Disconnect
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from authmate.auth.config import AuthConfig, get_auth_config
from authmate.auth.dependencies import CurrentPrincipal, OptionalPrincipal, owner_identity
from authmate.connections.models import Connection
from authmate.core.domain import SessionPrincipal, TokenResponse
from authmate.core.exceptions import (
    AuthMateError,
    ConcurrencyConflictError,
    ConnectionNotFoundError,
    InvalidStateError,
    ProfileFetchFailedError,
    StateDecodeError,
    TokenExchangeFailedError,
    UnknownProviderError,
    UserNotAuthorizedError,
)
from authmate.core.state import decode_state
from authmate.oauth.dependencies import Authenticator, Connections, Flow, ValidProvider
from authmate.users.models import DeviceInfo


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])

FLOW_SIGNIN = "signin"
FLOW_CONNECT = "connect"

# Generic error codes shown on the login page; never the upstream detail
_ERROR_CODES: list[tuple[type[AuthMateError], str]] = [
    (InvalidStateError, "invalid_state"),
    (UnknownProviderError, "unknown_provider"),
    (TokenExchangeFailedError, "token_exchange_failed"),
    (ProfileFetchFailedError, "profile_unavailable"),
    (UserNotAuthorizedError, "not_authorized"),
    (ConcurrencyConflictError, "try_again"),
]


def _error_code(exc: AuthMateError) -> str:
    for exc_type, code in _ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    return "authentication_failed"


# ============================================================================
# Response Models
# ============================================================================


class ConnectionSummary(BaseModel):
    """A connection without its token material."""

    provider: str
    scope: str | None
    issued_at: datetime
    expires_at: datetime | None
    expired: bool
    has_refresh_token: bool
    version: int

    @classmethod
    def from_connection(cls, connection: Connection) -> "ConnectionSummary":
        return cls(
            provider=connection.provider_name,
            scope=connection.scope,
            issued_at=connection.issued_at_utc,
            expires_at=connection.expires_at_utc,
            expired=connection.is_expired(),
            has_refresh_token=bool(connection.refresh_token),
            version=connection.version,
        )


# ============================================================================
# Flow Endpoints
# ============================================================================


@router.get("/{provider}/connect")
async def connect(
    provider: ValidProvider,
    principal: CurrentPrincipal,
    flow: Flow,
):
    """
    Start a connection flow.

    Requires authentication. Redirects to the provider's authorization page.
    """
    logger.info(
        f"Starting connection flow for provider: {provider.name}",
        extra={"owner": owner_identity(principal), "provider": provider.name},
    )
    url = flow.build_authorization_url(
        provider.name,
        return_url=f"/dashboard?connected={provider.key}",
        additional_data={"flow": FLOW_CONNECT},
    )
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.get("/{provider}/callback")
async def callback(
    provider: str,
    request: Request,
    flow: Flow,
    authenticator: Authenticator,
    principal: OptionalPrincipal,
    config: Annotated[AuthConfig, Depends(get_auth_config)],
    code: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
    error: Annotated[str | None, Query()] = None,
):
    """
    Handle the provider's redirect back to us.

    Sign-in flows admit the user and set the session cookie; connection
    flows store the tokens for the signed-in user. Every failure redirects
    to the login page with a generic error code.
    """
    if error:
        logger.warning(
            "Provider returned an error", extra={"provider": provider, "error": error}
        )
        return _login_redirect(config, "access_denied")
    if not code or not state:
        return _login_redirect(config, "invalid_request")

    try:
        state_token = decode_state(state)
    except StateDecodeError:
        logger.warning("Callback state could not be decoded", extra={"provider": provider})
        return _login_redirect(config, "invalid_state")

    kind = state_token.additional_data.get("flow", FLOW_SIGNIN)
    owner = None
    on_profile = None

    if kind == FLOW_CONNECT:
        if principal is None:
            return _login_redirect(config, "not_authenticated")
        owner = owner_identity(principal)
    else:
        device = DeviceInfo(
            ip_address=request.client.host if request.client else None,
            browser=request.headers.get("user-agent"),
        )

        async def on_profile(
            profile: SessionPrincipal, token_response: TokenResponse
        ) -> SessionPrincipal:
            return await authenticator.authorize(profile, device)

    try:
        result = await flow.handle_callback(
            code,
            state,
            owner_identity=owner,
            on_profile=on_profile,
            expected_provider=provider,
        )
    except AuthMateError as e:
        logger.error(
            f"OAuth callback failed: {type(e).__name__}",
            extra={"provider": provider, "flow": kind},
        )
        return _login_redirect(config, _error_code(e))

    response = RedirectResponse(
        url=config.safe_return_path(result.return_url),
        status_code=status.HTTP_302_FOUND,
    )
    if kind != FLOW_CONNECT and result.session_token is not None:
        response.set_cookie(
            key=config.session_cookie_name,
            value=result.session_token.token,
            max_age=config.session_cookie_max_age,
            httponly=True,
            secure=config.secure_cookies,
            samesite="lax",
        )

    logger.info(
        f"OAuth callback completed for provider: {result.provider_name}",
        extra={"provider": result.provider_name, "flow": kind},
    )
    return response


def _login_redirect(config: AuthConfig, error: str) -> RedirectResponse:
    return RedirectResponse(
        url=config.login_error_url(error), status_code=status.HTTP_302_FOUND
    )


# ============================================================================
# Connection Management
# ============================================================================


@router.get("/connections")
async def list_connections(
    principal: CurrentPrincipal,
    connections: Connections,
):
    """List the signed-in user's connections."""
    stored = await connections.list_connections(owner_identity(principal))
    return {
        "status": "success",
        "connections": [ConnectionSummary.from_connection(c) for c in stored],
    }


@router.post("/{provider}/refresh")
async def refresh_connection(
    provider: ValidProvider,
    principal: CurrentPrincipal,
    connections: Connections,
):
    """
    Refresh a connection's access token.

    NoRefreshTokenError and TokenExchangeFailedError are turned into
    responses by the app-level exception handlers.
    """
    owner = owner_identity(principal)
    connection = await connections.get_active(owner, provider.name)
    if connection is None:
        raise ConnectionNotFoundError(f"No connection found for provider: {provider.name}")

    refreshed = await connections.refresh(provider, connection)
    return {
        "status": "success",
        "connection": ConnectionSummary.from_connection(refreshed),
    }


@router.delete("/{provider}")
async def disconnect(
    provider: ValidProvider,
    principal: CurrentPrincipal,
    connections: Connections,
):
    """Remove the stored tokens for a provider."""
    owner = owner_identity(principal)
    await connections.delete(owner, provider.name)

    logger.info(
        f"Disconnected {provider.name} for user",
        extra={"owner": owner, "provider": provider.name},
    )
    return {
        "status": "success",
        "message": f"Disconnected from {provider.name}",
    }
