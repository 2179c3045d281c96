"""
OAuth state parameter encoding.

The state round-trips through the provider and back to our callback, so it
carries everything the callback needs: the provider name, when it was
issued and where to send the user afterwards. It is JSON, base64-encoded
(URL-safe alphabet) so it survives query strings unchanged.

Validation bounds the replay window for a captured state to two hours
either side of issuance.
"""

import base64
import binascii
import logging
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field, ValidationError, field_validator

from authmate.core.exceptions import StateDecodeError


logger = logging.getLogger(__name__)

# Providers a state may name, compared case-insensitively
KNOWN_PROVIDERS = frozenset(
    {"google", "facebook", "microsoft", "twitter", "github", "reddit", "amazon"}
)

STATE_VALIDITY_WINDOW = timedelta(hours=2)


class StateToken(BaseModel):
    """Decoded contents of an OAuth state parameter."""

    provider_name: str = Field(min_length=1)
    issued_at: datetime
    return_url: str | None = None
    additional_data: dict[str, str] = Field(default_factory=dict)

    @field_validator("issued_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)


def encode_state(
    provider_name: str,
    return_url: str | None = None,
    additional_data: dict[str, str] | None = None,
    now: datetime | None = None,
) -> str:
    """
    Encode a state parameter for provider_name, stamped with the current UTC time.

    Args:
        provider_name: Provider the flow is started for
        return_url: Where to redirect the user once the flow completes
        additional_data: Extra string values to carry through the round trip
        now: Override the issue time (tests)

    Returns:
        URL-safe base64 of the JSON-serialized state
    """
    token = StateToken(
        provider_name=provider_name,
        issued_at=now or datetime.now(UTC),
        return_url=return_url,
        additional_data=additional_data or {},
    )
    return base64.urlsafe_b64encode(token.model_dump_json().encode("utf-8")).decode(
        "ascii"
    )


def decode_state(value: str) -> StateToken:
    """
    Decode a state parameter.

    Accepts both padded and unpadded base64.

    Raises:
        StateDecodeError: If the value is not base64, not UTF-8 JSON, or does
            not match the state schema
    """
    if not value:
        raise StateDecodeError("State is empty")

    try:
        padded = value + "=" * (-len(value) % 4)
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        return StateToken.model_validate_json(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        # pydantic's ValidationError is a ValueError
        if isinstance(e, ValidationError):
            raise StateDecodeError(f"State does not match schema: {e}") from e
        raise StateDecodeError(f"State is not valid base64 JSON: {e}") from e


def is_state_current(token: StateToken, now: datetime | None = None) -> bool:
    """Check the state names a known provider and was issued within the window."""
    if token.provider_name.lower() not in KNOWN_PROVIDERS:
        logger.warning(
            "State names unknown provider",
            extra={"provider": token.provider_name},
        )
        return False

    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    if not (now - STATE_VALIDITY_WINDOW <= token.issued_at <= now + STATE_VALIDITY_WINDOW):
        logger.warning(
            "State outside validity window",
            extra={
                "provider": token.provider_name,
                "issued_at": token.issued_at.isoformat(),
            },
        )
        return False

    return True


def validate_state(value: str, now: datetime | None = None) -> bool:
    """
    Validate a state parameter. Fails closed: never raises.

    Returns:
        True if the state decodes, names a known provider and was issued
        within two hours of now
    """
    try:
        token = decode_state(value)
    except StateDecodeError as e:
        logger.warning(f"Rejected undecodable state: {e}")
        return False
    return is_state_current(token, now)
