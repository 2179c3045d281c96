"""
In-memory user directory storage.

Arena-style: each entity table is a dict keyed by numeric id, with ids
allocated from per-table counters. Relations are plain id fields and are
looked up explicitly, so there are no object back-references.
"""

import logging
from itertools import count

from authmate.users.models import (
    Account,
    AccountInvitation,
    AccountType,
    AppUser,
    ApplicationInvitation,
    LoginHistory,
    Role,
    UserRole,
)


logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_TYPE = "Free"


class UserStore:
    """Tables of the user directory."""

    def __init__(self):
        self.account_types: dict[int, AccountType] = {}
        self.accounts: dict[int, Account] = {}
        self.users: dict[int, AppUser] = {}
        self.roles: dict[int, Role] = {}
        self.user_roles: list[UserRole] = []
        self.account_invitations: dict[str, AccountInvitation] = {}
        self.application_invitations: dict[str, ApplicationInvitation] = {}
        self.login_history: list[LoginHistory] = []
        self._ids = {
            "account_types": count(1),
            "accounts": count(1),
            "users": count(1),
            "roles": count(1),
        }

    def next_id(self, table: str) -> int:
        return next(self._ids[table])

    # Account types

    def get_or_create_account_type(self, name: str) -> AccountType:
        for account_type in self.account_types.values():
            if account_type.name == name:
                return account_type
        account_type = AccountType(id=self.next_id("account_types"), name=name)
        self.account_types[account_type.id] = account_type
        return account_type

    # Accounts

    def add_account(self, account: Account) -> Account:
        self.accounts[account.id] = account
        return account

    def get_account(self, account_id: int) -> Account | None:
        return self.accounts.get(account_id)

    # Users

    def add_user(self, user: AppUser) -> AppUser:
        self.users[user.id] = user
        return user

    def find_user_by_email(self, email: str) -> AppUser | None:
        email = email.lower()
        for user in self.users.values():
            if user.email.lower() == email:
                return user
        return None

    # Roles

    def add_role(self, role: Role) -> Role:
        self.roles[role.id] = role
        return role

    def find_role(self, name: str) -> Role | None:
        for role in self.roles.values():
            if role.name == name:
                return role
        return None

    def roles_for_user(self, user_id: int) -> list[Role]:
        return [
            self.roles[link.role_id]
            for link in self.user_roles
            if link.user_id == user_id and link.role_id in self.roles
        ]

    # Invitations

    def add_account_invitation(self, invitation: AccountInvitation) -> None:
        self.account_invitations[invitation.email.lower()] = invitation

    def find_account_invitation(self, email: str) -> AccountInvitation | None:
        return self.account_invitations.get(email.lower())

    def add_application_invitation(self, invitation: ApplicationInvitation) -> None:
        self.application_invitations[invitation.email.lower()] = invitation

    def find_application_invitation(self, email: str) -> ApplicationInvitation | None:
        return self.application_invitations.get(email.lower())


# Singleton instance for dependency injection
_store: UserStore | None = None


def get_user_store() -> UserStore:
    """Get the user store singleton."""
    global _store
    if _store is None:
        _store = UserStore()
        logger.info("Using in-memory user store")
    return _store


def reset_user_store() -> None:
    """
    Reset the user store singleton.

    Useful for testing to ensure clean state between tests.
    """
    global _store
    _store = None
