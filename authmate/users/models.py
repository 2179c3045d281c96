"""
User directory domain models.

Entities reference each other by numeric id only; relations (a user's
account, a user's roles) are resolved through UserStore lookups.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, EmailStr, Field


ADMINISTRATOR_ROLE = "Administrator"


def _now() -> datetime:
    return datetime.now(UTC)


class AccountType(BaseModel):
    """Plan/tier an account belongs to (e.g. Free)."""

    id: int
    name: str


class Account(BaseModel):
    """A tenant: the unit users are invited into and that can expire."""

    id: int
    name: str
    owner: EmailStr
    account_type_id: int
    expires_at: datetime | None = Field(
        default=None, description="Account is inactive from this moment on"
    )
    created_at: datetime = Field(default_factory=_now)

    def is_active(self, now: datetime | None = None) -> bool:
        return self.expires_at is None or self.expires_at > (now or _now())


class AppUser(BaseModel):
    """An application user, keyed by email."""

    id: int
    email: EmailStr
    display_name: str | None = None
    provider_key: str
    provider_type: str
    profile_picture_url: str | None = None
    account_id: int
    active_until: datetime | None = None
    last_login_at: datetime | None = None
    version: int = 0
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def is_active(self, now: datetime | None = None) -> bool:
        return self.active_until is None or self.active_until >= (now or _now())


class Role(BaseModel):
    id: int
    name: str
    description: str | None = None


class UserRole(BaseModel):
    """Link between a user and a role."""

    user_id: int
    role_id: int


class AccountInvitation(BaseModel):
    """Invites an email into an existing account with a given role."""

    email: EmailStr
    account_id: int
    role_id: int


class ApplicationInvitation(BaseModel):
    """Invites an email to the application; a new account is created on first login."""

    email: EmailStr
    account_type_id: int


class DeviceInfo(BaseModel):
    """Client details recorded with each login."""

    ip_address: str | None = None
    browser: str | None = None
    os: str | None = None


class LoginHistory(BaseModel):
    email: EmailStr
    ip_address: str | None = None
    browser: str | None = None
    os: str | None = None
    logged_in_at: datetime = Field(default_factory=_now)
