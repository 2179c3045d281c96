"""
Domain exceptions for the AuthMate core.

These exceptions represent failures of the OAuth flow, token handling and
connection lifecycle. They are raised by the core and converted to HTTP
responses by the centralized exception handlers in authmate/main.py.
"""

from typing import Any


class AuthMateError(Exception):
    """Base exception for all AuthMate errors."""

    pass


class ConfigurationError(AuthMateError):
    """
    Raised when configuration is invalid at load time.

    For example two provider configs sharing a name (case-insensitive),
    or a missing signing key in production.
    """

    pass


class UnknownProviderError(AuthMateError):
    """Raised when no provider config matches the requested name."""

    def __init__(self, provider_name: str):
        self.provider_name = provider_name
        super().__init__(f"Unknown provider: {provider_name}")


class DecodeError(AuthMateError):
    """Raised when an opaque value (state or bearer token) cannot be decoded."""

    pass


class StateDecodeError(DecodeError):
    """Raised when a state parameter is not base64-encoded JSON of the expected shape."""

    pass


class InvalidStateError(AuthMateError):
    """
    Raised when the callback state fails validation.

    The state was malformed, named an unrecognized provider, or was issued
    outside the validity window. The flow is aborted before any token
    exchange is attempted.
    """

    pass


class TokenExchangeFailedError(AuthMateError):
    """
    Raised when the token endpoint rejects a code or refresh token exchange.

    status_code is the upstream HTTP status, or None when the request never
    produced a response (network error, timeout, unparseable body).
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ProfileFetchFailedError(AuthMateError):
    """
    Raised when the user-info endpoint call fails.

    The token exchange already succeeded at this point, so the error carries
    the still-valid token response (and the persisted connection, when the
    flow knew whom to persist it for).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        token_response: Any = None,
        connection: Any = None,
    ):
        self.status_code = status_code
        self.token_response = token_response
        self.connection = connection
        super().__init__(message)


class NoRefreshTokenError(AuthMateError):
    """Raised when a refresh is requested for a connection without a refresh token."""

    pass


class InvalidTokenError(AuthMateError):
    """Raised when a bearer token fails validation (issuer, audience, claims)."""

    pass


class ExpiredTokenError(InvalidTokenError):
    """Raised when a bearer token is past its expiry."""

    pass


class InvalidSignatureError(InvalidTokenError):
    """Raised when a bearer token signature does not match the signing key."""

    pass


class ConcurrencyConflictError(AuthMateError):
    """Raised when a connection was modified concurrently (version mismatch)."""

    pass


class ConnectionNotFoundError(AuthMateError):
    """Raised when a connection does not exist for an (owner, provider) pair."""

    pass


class UserNotAuthorizedError(AuthMateError):
    """
    Raised when a signed-in identity is not allowed into the application.

    Either the user or their account is inactive, or the email has no
    invitation.
    """

    pass
