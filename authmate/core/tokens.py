"""
Bearer token issuance and validation.

Tokens are HS256-signed JWTs produced with authlib's JOSE implementation.
The signing key is explicit configuration: every token signed with a key
becomes invalid once that key changes, so production deployments must
persist AUTHMATE_TOKEN_SECRET outside the process.
"""

import logging
import os
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from functools import lru_cache

from authlib.jose import JsonWebToken
from authlib.jose import errors as jose_errors

from authmate.core.domain import SessionPrincipal, SignedToken
from authmate.core.exceptions import (
    ConfigurationError,
    DecodeError,
    ExpiredTokenError,
    InvalidSignatureError,
    InvalidTokenError,
)


logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"

DEFAULT_TOKEN_DURATION = timedelta(minutes=30)


def generate_secret() -> str:
    """Generate a random signing key (64 bytes, URL-safe base64)."""
    return secrets.token_urlsafe(64)


@dataclass
class BearerTokenConfig:
    """
    Bearer token settings.

    Required environment variables in production:
    - AUTHMATE_TOKEN_SECRET: HMAC signing key

    Optional:
    - AUTHMATE_TOKEN_ISSUER / AUTHMATE_TOKEN_AUDIENCE (default "authmate")
    - AUTHMATE_TOKEN_MINUTES: default token lifetime (default 30)
    """

    secret: str
    issuer: str = "authmate"
    audience: str = "authmate"
    default_duration: timedelta = field(default=DEFAULT_TOKEN_DURATION)

    @classmethod
    def from_env(cls) -> "BearerTokenConfig":
        """
        Load configuration from environment variables.

        Raises:
            ConfigurationError: If no secret is set and AUTHMATE_ENV is production
        """
        secret = os.getenv("AUTHMATE_TOKEN_SECRET")
        if not secret:
            if os.getenv("AUTHMATE_ENV", "").lower() == "production":
                raise ConfigurationError(
                    "AUTHMATE_TOKEN_SECRET must be set in production"
                )
            logger.warning(
                "AUTHMATE_TOKEN_SECRET not set - using an ephemeral signing key; "
                "issued tokens will not survive a restart"
            )
            secret = generate_secret()

        return cls(
            secret=secret,
            issuer=os.getenv("AUTHMATE_TOKEN_ISSUER", "authmate"),
            audience=os.getenv("AUTHMATE_TOKEN_AUDIENCE", "authmate"),
            default_duration=timedelta(
                minutes=int(os.getenv("AUTHMATE_TOKEN_MINUTES", "30"))
            ),
        )


@dataclass
class TokenValidation:
    """Outcome of validating a bearer token: a principal or an error."""

    principal: SessionPrincipal | None = None
    error: InvalidTokenError | DecodeError | None = None

    @property
    def is_valid(self) -> bool:
        return self.error is None and self.principal is not None


class BearerTokenIssuer:
    """Mints and validates signed, time-bound bearer tokens."""

    def __init__(self, config: BearerTokenConfig):
        if not config.secret:
            raise ConfigurationError("Bearer token secret must not be empty")
        self.config = config
        self._key = config.secret.encode("utf-8")
        self._jwt = JsonWebToken([_ALGORITHM])

    def issue(
        self,
        principal: SessionPrincipal,
        duration: timedelta | None = None,
        now: datetime | None = None,
    ) -> SignedToken:
        """
        Issue a token for principal.

        Args:
            principal: Identity to embed as claims
            duration: Lifetime (defaults to config.default_duration)
            now: Override the issue time (tests)

        Raises:
            ValueError: If duration is not positive
        """
        duration = duration if duration is not None else self.config.default_duration
        if duration <= timedelta(0):
            raise ValueError("Token duration must be greater than zero")

        issued_at = now or datetime.now(UTC)
        expires_at = issued_at + duration

        payload = principal.to_claims()
        payload.update(
            {
                "iss": self.config.issuer,
                "aud": self.config.audience,
                "iat": int(issued_at.timestamp()),
                "exp": int(expires_at.timestamp()),
            }
        )

        token = self._jwt.encode({"alg": _ALGORITHM, "typ": "JWT"}, payload, self._key)

        logger.info(
            "Issued bearer token",
            extra={
                "provider": principal.provider_type,
                "expires_at": expires_at.isoformat(),
            },
        )
        return SignedToken(
            token=token.decode("ascii"),
            expires_at=datetime.fromtimestamp(int(expires_at.timestamp()), UTC),
        )

    def verify(self, token: str, now: datetime | None = None) -> SessionPrincipal:
        """
        Verify a token and return its principal.

        Raises:
            DecodeError: If the token is not a well-formed JWT
            InvalidSignatureError: If the signature does not match
            ExpiredTokenError: If the token has expired
            InvalidTokenError: If issuer, audience or subject claims are wrong
        """
        claims_options = {
            "iss": {"essential": True, "value": self.config.issuer},
            "aud": {"essential": True, "value": self.config.audience},
            "exp": {"essential": True},
            "sub": {"essential": True},
        }

        try:
            claims = self._jwt.decode(token, self._key, claims_options=claims_options)
        except jose_errors.BadSignatureError as e:
            raise InvalidSignatureError("Token signature is invalid") from e
        except jose_errors.JoseError as e:
            raise DecodeError(f"Malformed token: {e}") from e
        except (ValueError, TypeError) as e:
            raise DecodeError(f"Malformed token: {e}") from e

        check_time = now or datetime.now(UTC)
        try:
            claims.validate(now=int(check_time.timestamp()), leeway=0)
        except jose_errors.ExpiredTokenError as e:
            raise ExpiredTokenError("Token has expired") from e
        except jose_errors.JoseError as e:
            raise InvalidTokenError(f"Token claims are invalid: {e}") from e

        return SessionPrincipal.from_claims(dict(claims))

    def validate(self, token: str, now: datetime | None = None) -> TokenValidation:
        """
        Validate a token without raising.

        Returns:
            TokenValidation holding the principal, or the error kind on failure
        """
        try:
            return TokenValidation(principal=self.verify(token, now))
        except (InvalidTokenError, DecodeError) as e:
            logger.debug(f"Bearer token rejected: {type(e).__name__}")
            return TokenValidation(error=e)


@lru_cache()
def get_token_issuer() -> BearerTokenIssuer:
    """Get the bearer token issuer singleton."""
    return BearerTokenIssuer(BearerTokenConfig.from_env())
