"""
HTTP calls to provider token and user-info endpoints.

Implements the server-to-server parts of the authorization code flow:
- Authorization code exchange (RFC 6749 Section 4.1.3)
- Refresh token exchange (RFC 6749 Section 6)
- User-info fetch with the access token as bearer credential

Every call has an explicit timeout and is attempted exactly once; failures
surface immediately as typed errors.
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from authmate.core.domain import TokenResponse
from authmate.core.exceptions import ProfileFetchFailedError, TokenExchangeFailedError
from authmate.oauth.config import ProviderConfig


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


class OAuthHttpClient:
    """Talks to a provider's token and user-info endpoints."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    async def exchange_code(self, config: ProviderConfig, code: str) -> TokenResponse:
        """
        Exchange an authorization code for tokens.

        Raises:
            TokenExchangeFailedError: On non-success status, network error or
                an unparseable response
        """
        form_data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": config.client_id,
            "client_secret": config.client_secret,
            "redirect_uri": config.redirect_uri,
        }
        return await self._post_token_request(config, form_data)

    async def refresh(self, config: ProviderConfig, refresh_token: str) -> TokenResponse:
        """
        Exchange a refresh token for a new access token.

        Raises:
            TokenExchangeFailedError: On non-success status, network error or
                an unparseable response
        """
        form_data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": config.client_id,
            "client_secret": config.client_secret,
        }
        return await self._post_token_request(config, form_data)

    async def fetch_user_info(
        self, config: ProviderConfig, access_token: str
    ) -> dict[str, Any]:
        """
        Fetch the raw user-info document.

        Raises:
            ProfileFetchFailedError: On non-success status, network error or
                a non-JSON-object body
        """
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(config.user_info_endpoint, headers=headers)
        except httpx.RequestError as e:
            logger.error(
                f"Network error fetching user info: {e}",
                extra={"provider": config.name},
            )
            raise ProfileFetchFailedError(f"Network error: {e}") from e

        if not response.is_success:
            logger.error(
                "User info request failed",
                extra={"provider": config.name, "status_code": response.status_code},
            )
            raise ProfileFetchFailedError(
                f"User info request failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProfileFetchFailedError(
                "User info response is not JSON", status_code=response.status_code
            ) from e

        if not isinstance(data, dict):
            raise ProfileFetchFailedError(
                "User info response is not a JSON object",
                status_code=response.status_code,
            )
        return data

    async def _post_token_request(
        self, config: ProviderConfig, form_data: dict[str, str]
    ) -> TokenResponse:
        """POST a form-encoded token request and parse the JSON response."""
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }

        logger.debug(
            f"Token request: grant_type={form_data['grant_type']}",
            extra={"provider": config.name, "token_endpoint": config.token_endpoint},
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    config.token_endpoint, data=form_data, headers=headers
                )
        except httpx.RequestError as e:
            logger.error(
                f"Network error during token request: {e}",
                extra={"provider": config.name},
            )
            raise TokenExchangeFailedError(f"Network error: {e}") from e

        if not response.is_success:
            # Body may echo the grant; log only the status
            logger.error(
                "Token request failed",
                extra={"provider": config.name, "status_code": response.status_code},
            )
            raise TokenExchangeFailedError(
                f"Token request failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            token_response = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenExchangeFailedError(
                f"Invalid token response format: {e}",
                status_code=response.status_code,
            ) from e

        logger.info(
            f"Token request successful: grant_type={form_data['grant_type']}",
            extra={"provider": config.name},
        )
        return token_response
