"""
Authentication API routes.

- GET /login: Sign-in landing page (lists providers, shows flow errors)
- GET /auth/login/{provider}: Start sign-in with a provider
- POST /auth/token: Mint a bearer token for API clients
- GET /auth/me: Current principal
- POST /auth/logout: Clear the session cookie
- GET /dashboard: Protected resource
"""

import logging
from datetime import datetime, timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field

from authmate.auth.config import AuthConfig, get_auth_config
from authmate.auth.dependencies import CurrentPrincipal, TokenIssuer
from authmate.core.domain import SessionPrincipal
from authmate.oauth.dependencies import Flow, ValidProvider, get_registry
from authmate.oauth.registry import ProviderRegistry
from authmate.oauth.router import FLOW_SIGNIN


logger = logging.getLogger(__name__)

router = APIRouter(tags=["authentication"])


# ============================================================================
# Request/Response Models
# ============================================================================


class TokenRequest(BaseModel):
    """Request body for the token endpoint."""

    minutes: int | None = Field(default=None, gt=0, le=24 * 60)


class TokenResponseBody(BaseModel):
    access_token: str
    token_type: str
    expires_at: datetime


# ============================================================================
# API Endpoints
# ============================================================================


@router.get("/login")
async def login_page(
    registry: Annotated[ProviderRegistry, Depends(get_registry)],
    error: Annotated[str | None, Query()] = None,
) -> dict:
    """Entry point for sign-in; flow failures land here with an error code."""
    return {
        "status": "error" if error else "ok",
        "error": error,
        "providers": [
            {"name": name, "login_url": f"/auth/login/{name.lower()}"}
            for name in registry.names()
        ],
    }


@router.get("/auth/login/{provider}")
async def login(
    provider: ValidProvider,
    flow: Flow,
    config: Annotated[AuthConfig, Depends(get_auth_config)],
    return_url: Annotated[str | None, Query()] = None,
):
    """Redirect to the provider to sign in."""
    url = flow.build_authorization_url(
        provider.name,
        return_url=config.safe_return_path(return_url),
        additional_data={"flow": FLOW_SIGNIN},
    )
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.post("/auth/token", response_model=TokenResponseBody)
async def issue_token(
    principal: CurrentPrincipal,
    issuer: TokenIssuer,
    request: TokenRequest | None = None,
) -> TokenResponseBody:
    """Mint a bearer token for the signed-in principal."""
    duration = (
        timedelta(minutes=request.minutes) if request and request.minutes else None
    )
    signed = issuer.issue(principal, duration=duration)
    return TokenResponseBody(
        access_token=signed.token,
        token_type=signed.token_type,
        expires_at=signed.expires_at,
    )


@router.get("/auth/me", response_model=SessionPrincipal)
async def me(principal: CurrentPrincipal) -> SessionPrincipal:
    return principal


@router.post("/auth/logout")
async def logout(config: Annotated[AuthConfig, Depends(get_auth_config)]):
    response = JSONResponse({"status": "success", "message": "Signed out"})
    response.delete_cookie(config.session_cookie_name)
    return response


@router.get("/dashboard")
async def dashboard(principal: CurrentPrincipal) -> dict:
    """
    Protected dashboard endpoint.

    Requires a valid session cookie or bearer token.
    """
    logger.info(f"Dashboard accessed by user: {principal.email or principal.provider_key}")

    return {
        "status": "success",
        "message": "Welcome, you are authenticated!",
        "user": {
            "provider": principal.provider_type,
            "email": principal.email,
            "name": principal.display_name,
            "roles": sorted(principal.roles),
        },
    }
