"""
Authorization code flow orchestration.

One AuthorizationCodeFlow instance drives one flow:

    INIT --build_authorization_url--> AWAITING_CALLBACK
    AWAITING_CALLBACK --handle_callback--> EXCHANGED --> COMPLETE

Any failure moves the flow to FAILED and raises a typed error. Nothing is
retried; the caller decides whether to start over.

The callback can arrive in a different process than the one that built the
URL, so a fresh flow may call handle_callback directly: everything it needs
round-trips through the state parameter.
"""

import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from urllib.parse import urlencode

from pydantic import BaseModel, Field

from authmate.connections.models import Connection
from authmate.connections.service import ConnectionManager
from authmate.core.domain import SessionPrincipal, SignedToken, TokenResponse
from authmate.core.exceptions import (
    AuthMateError,
    InvalidStateError,
    ProfileFetchFailedError,
)
from authmate.core.state import decode_state, encode_state, validate_state
from authmate.core.tokens import BearerTokenIssuer
from authmate.oauth.client import OAuthHttpClient
from authmate.oauth.config import ProviderConfig
from authmate.oauth.profiles import map_profile
from authmate.oauth.registry import ProviderRegistry


logger = logging.getLogger(__name__)

# Async hook run after the profile fetch; may return a replacement principal
ProfileHook = Callable[
    [SessionPrincipal, TokenResponse], Awaitable[SessionPrincipal | None]
]


class FlowState(str, Enum):
    INIT = "init"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGED = "exchanged"
    COMPLETE = "complete"
    FAILED = "failed"


class FlowResult(BaseModel):
    """Everything a completed callback produced."""

    provider_name: str
    token_response: TokenResponse
    principal: SessionPrincipal | None = None
    connection: Connection | None = None
    session_token: SignedToken | None = None
    return_url: str | None = None
    additional_data: dict[str, str] = Field(default_factory=dict)


class AuthorizationCodeFlow:
    """Drives a single authorization code flow against one provider."""

    def __init__(
        self,
        registry: ProviderRegistry,
        connections: ConnectionManager,
        http_client: OAuthHttpClient | None = None,
        issuer: BearerTokenIssuer | None = None,
    ):
        self.registry = registry
        self.connections = connections
        self.http_client = http_client or connections.http_client
        self.issuer = issuer
        self.state = FlowState.INIT
        self.token_response: TokenResponse | None = None

    def build_authorization_url(
        self,
        provider_name: str,
        return_url: str | None = None,
        additional_data: dict[str, str] | None = None,
    ) -> str:
        """
        Compose the provider authorization URL the browser is redirected to.

        Raises:
            UnknownProviderError: If provider_name is not configured
        """
        config = self.registry.resolve(provider_name)
        state = encode_state(
            config.name, return_url=return_url, additional_data=additional_data
        )

        # Protocol parameters are applied last so extras cannot replace them
        params = dict(config.authorize_params)
        params.update(
            {
                "response_type": "code",
                "client_id": config.client_id,
                "redirect_uri": config.redirect_uri,
                "scope": config.scope,
                "state": state,
            }
        )

        self.state = FlowState.AWAITING_CALLBACK
        logger.info(
            f"Starting {config.name} authorization",
            extra={"provider": config.name, "return_url": return_url},
        )
        return f"{config.authorization_endpoint}?{urlencode(params)}"

    async def fetch_profile(
        self, config: ProviderConfig, access_token: str
    ) -> SessionPrincipal:
        """
        Fetch and normalize the signed-in user's profile.

        Raises:
            ProfileFetchFailedError: If the call fails or the payload has no subject
        """
        data = await self.http_client.fetch_user_info(config, access_token)
        try:
            return map_profile(config.name, data)
        except ValueError as e:
            raise ProfileFetchFailedError(str(e)) from e

    async def handle_callback(
        self,
        code: str,
        state: str,
        owner_identity: str | None = None,
        on_profile: ProfileHook | None = None,
        expected_provider: str | None = None,
    ) -> FlowResult:
        """
        Complete the flow from the provider's callback.

        Args:
            code: Authorization code from the callback
            state: State parameter from the callback
            owner_identity: Who owns the resulting connection; defaults to the
                profile's email
            on_profile: Hook awaited after the profile fetch
            expected_provider: Reject states issued for a different provider

        Raises:
            InvalidStateError: Before any HTTP call, if the state is rejected
            UnknownProviderError: If the state's provider is not configured
            TokenExchangeFailedError: If the token endpoint rejects the code
            ProfileFetchFailedError: If the user-info call fails; carries the
                token response and any connection persisted for owner_identity
        """
        try:
            return await self._handle_callback(
                code, state, owner_identity, on_profile, expected_provider
            )
        except AuthMateError:
            self.state = FlowState.FAILED
            raise

    async def _handle_callback(
        self,
        code: str,
        state: str,
        owner_identity: str | None,
        on_profile: ProfileHook | None,
        expected_provider: str | None,
    ) -> FlowResult:
        if not validate_state(state):
            raise InvalidStateError("State parameter is invalid or expired")

        state_token = decode_state(state)
        if (
            expected_provider is not None
            and state_token.provider_name.lower() != expected_provider.lower()
        ):
            raise InvalidStateError(
                f"State was issued for {state_token.provider_name}, "
                f"not {expected_provider}"
            )

        config = self.registry.resolve(state_token.provider_name)

        token_response = await self.http_client.exchange_code(config, code)
        self.token_response = token_response
        self.state = FlowState.EXCHANGED

        try:
            principal = await self.fetch_profile(config, token_response.access_token)
        except ProfileFetchFailedError as e:
            # The exchange stands; keep the grant if we know whose it is
            e.token_response = token_response
            if owner_identity:
                e.connection = await self.connections.upsert(
                    owner_identity, config.name, token_response
                )
            logger.error(
                f"Profile fetch failed after token exchange: {e}",
                extra={"provider": config.name, "persisted": e.connection is not None},
            )
            raise

        if on_profile is not None:
            replacement = await on_profile(principal, token_response)
            if replacement is not None:
                principal = replacement

        owner = owner_identity or principal.email
        connection = None
        if owner:
            connection = await self.connections.upsert(owner, config.name, token_response)
        else:
            logger.warning(
                "No owner identity for connection; tokens not stored",
                extra={"provider": config.name},
            )

        session_token = self.issuer.issue(principal) if self.issuer else None

        self.state = FlowState.COMPLETE
        logger.info(
            f"Completed {config.name} authorization",
            extra={"provider": config.name, "owner": owner},
        )
        return FlowResult(
            provider_name=config.name,
            token_response=token_response,
            principal=principal,
            connection=connection,
            session_token=session_token,
            return_url=state_token.return_url,
            additional_data=state_token.additional_data,
        )
