"""
Normalization of provider user-info payloads into a SessionPrincipal.
"""

from collections.abc import Callable
from typing import Any

from authmate.core.domain import SessionPrincipal


def _str_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _oidc(provider: str, data: dict[str, Any]) -> SessionPrincipal:
    # Google, Microsoft and other OpenID Connect userinfo endpoints
    return SessionPrincipal(
        provider_key=str(data.get("sub") or data.get("id") or ""),
        provider_type=provider,
        display_name=_str_or_none(data.get("name")),
        email=_str_or_none(data.get("email")),
        profile_picture_url=_str_or_none(data.get("picture")),
    )


def _github(provider: str, data: dict[str, Any]) -> SessionPrincipal:
    return SessionPrincipal(
        provider_key=str(data.get("id", "")),
        provider_type=provider,
        display_name=_str_or_none(data.get("name") or data.get("login")),
        email=_str_or_none(data.get("email")),
        profile_picture_url=_str_or_none(data.get("avatar_url")),
    )


def _facebook(provider: str, data: dict[str, Any]) -> SessionPrincipal:
    picture = data.get("picture")
    picture_url = None
    if isinstance(picture, dict):
        picture_url = (picture.get("data") or {}).get("url")
    return SessionPrincipal(
        provider_key=str(data.get("id", "")),
        provider_type=provider,
        display_name=_str_or_none(data.get("name")),
        email=_str_or_none(data.get("email")),
        profile_picture_url=_str_or_none(picture_url),
    )


def _twitter(provider: str, data: dict[str, Any]) -> SessionPrincipal:
    # v2 API nests the user under "data"
    user = data.get("data") if isinstance(data.get("data"), dict) else data
    return SessionPrincipal(
        provider_key=str(user.get("id_str") or user.get("id") or ""),
        provider_type=provider,
        display_name=_str_or_none(user.get("name") or user.get("username")),
        email=_str_or_none(user.get("email")),
        profile_picture_url=_str_or_none(
            user.get("profile_image_url_https") or user.get("profile_image_url")
        ),
    )


def _reddit(provider: str, data: dict[str, Any]) -> SessionPrincipal:
    icon = data.get("icon_img") or ""
    return SessionPrincipal(
        provider_key=str(data.get("id", "")),
        provider_type=provider,
        display_name=_str_or_none(data.get("name")),
        email=None,
        # Reddit HTML-escapes query strings in icon URLs
        profile_picture_url=_str_or_none(icon.replace("&amp;", "&")),
    )


def _amazon(provider: str, data: dict[str, Any]) -> SessionPrincipal:
    return SessionPrincipal(
        provider_key=str(data.get("user_id", "")),
        provider_type=provider,
        display_name=_str_or_none(data.get("name")),
        email=_str_or_none(data.get("email")),
    )


PROFILE_MAPPERS: dict[str, Callable[[str, dict[str, Any]], SessionPrincipal]] = {
    "google": _oidc,
    "microsoft": _oidc,
    "github": _github,
    "facebook": _facebook,
    "twitter": _twitter,
    "reddit": _reddit,
    "amazon": _amazon,
}


def map_profile(provider_name: str, data: dict[str, Any]) -> SessionPrincipal:
    """
    Map a provider's user-info JSON into a SessionPrincipal.

    Unknown providers are read using OpenID Connect claim names.

    Raises:
        ValueError: If the payload carries no subject identifier
    """
    provider = provider_name.lower()
    mapper = PROFILE_MAPPERS.get(provider, _oidc)
    principal = mapper(provider, data)
    if not principal.provider_key:
        raise ValueError(f"{provider_name} user info has no subject identifier")
    return principal
