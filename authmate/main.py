"""
FastAPI application for OAuth sign-in and provider connections.

This module wires dependencies and configures the application.
Flow logic is in authmate/core and authmate/oauth, storage in
authmate/connections and authmate/infrastructure.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime

# Configure logging FIRST, before other local imports
from authmate.logging_config import configure_logging

configure_logging()

# Now import other modules (they will use the configured logging)
from fastapi import Depends, FastAPI, Request, status  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from authmate.auth import routes as auth_routes  # noqa: E402
from authmate.auth.config import get_auth_config  # noqa: E402
from authmate.core.exceptions import (  # noqa: E402
    AuthMateError,
    ConcurrencyConflictError,
    ConnectionNotFoundError,
    DecodeError,
    InvalidStateError,
    InvalidTokenError,
    NoRefreshTokenError,
    ProfileFetchFailedError,
    TokenExchangeFailedError,
    UnknownProviderError,
    UserNotAuthorizedError,
)
from authmate.core.tokens import get_token_issuer  # noqa: E402
from authmate.infrastructure.firestore import (  # noqa: E402
    close_firestore_client,
    is_connection_storage_configured,
)
from authmate.oauth import router as oauth_router  # noqa: E402
from authmate.oauth.dependencies import get_registry  # noqa: E402
from authmate.oauth.registry import ProviderRegistry, get_provider_registry  # noqa: E402
from authmate.users.service import get_user_service  # noqa: E402

logger = logging.getLogger(__name__)


# ============================================================================
# Application Lifecycle
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Loads configuration eagerly so bad settings fail at startup, and seeds
    the administrator invitation.
    """
    logger.info("Application starting up...")
    config = get_auth_config()
    config.validate()
    registry = get_provider_registry()
    get_token_issuer()
    logger.info(f"Configured providers: {registry.names()}")

    if config.admin_email:
        await get_user_service().invite_to_application(config.admin_email)
        logger.info(f"Seeded application invitation for {config.admin_email}")

    yield

    logger.info("Shutting down application...")
    try:
        close_firestore_client()
    except Exception as e:
        logger.warning(f"Error closing Firestore client during shutdown: {e}")


app = FastAPI(
    title="AuthMate",
    description="OAuth sign-in, bearer tokens and provider connections",
    version="1.0.0",
    lifespan=lifespan,
)


# ============================================================================
# Centralized Exception Handlers
# ============================================================================

# Most specific first; the first isinstance match wins
_ERROR_STATUS: list[tuple[type[AuthMateError], int]] = [
    (UnknownProviderError, status.HTTP_404_NOT_FOUND),
    (ConnectionNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_400_BAD_REQUEST),
    (NoRefreshTokenError, status.HTTP_400_BAD_REQUEST),
    (InvalidTokenError, status.HTTP_401_UNAUTHORIZED),
    (DecodeError, status.HTTP_401_UNAUTHORIZED),
    (UserNotAuthorizedError, status.HTTP_403_FORBIDDEN),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT),
    (TokenExchangeFailedError, status.HTTP_502_BAD_GATEWAY),
    (ProfileFetchFailedError, status.HTTP_502_BAD_GATEWAY),
]


def status_for(exc: AuthMateError) -> int:
    for exc_type, status_code in _ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(AuthMateError)
async def authmate_error_handler(request: Request, exc: AuthMateError):
    """
    Map domain errors to HTTP responses.

    Upstream failures become 502 with a generic message; the upstream body
    is never echoed back.
    """
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc}", extra={"path": request.url.path})
        message = "Upstream provider request failed"
        if status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
            message = "Internal error"
    else:
        logger.warning(f"{type(exc).__name__}: {exc}", extra={"path": request.url.path})
        message = str(exc)

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "error",
            "error": type(exc).__name__,
            "message": message,
        },
        headers=headers,
    )


# ============================================================================
# Health Check Endpoints
# ============================================================================


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "authmate",
        "timestamp": datetime.now(UTC).isoformat(),
    }


@app.get("/health")
async def health(registry: ProviderRegistry = Depends(get_registry)):
    """Readiness check for Cloud Run; reports providers and token storage."""
    return {
        "status": "healthy",
        "providers": sorted(name.lower() for name in registry.names()),
        "connection_storage": "firestore" if is_connection_storage_configured() else "memory",
    }


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(auth_routes.router)
app.include_router(oauth_router.router)


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8080))
    uvicorn.run(app, host="0.0.0.0", port=port)
