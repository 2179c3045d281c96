"""
User directory services.

UserService manages users and roles. AuthenticationService decides whether a
signed-in identity may enter the application and attaches its local roles;
its authorize() is the post-exchange hook of the sign-in flow.
"""

import logging
from datetime import UTC, datetime

from authmate.core.domain import SessionPrincipal
from authmate.core.exceptions import UserNotAuthorizedError
from authmate.users.models import (
    ADMINISTRATOR_ROLE,
    Account,
    AccountInvitation,
    AppUser,
    ApplicationInvitation,
    DeviceInfo,
    LoginHistory,
    Role,
    UserRole,
)
from authmate.users.store import DEFAULT_ACCOUNT_TYPE, UserStore, get_user_store


logger = logging.getLogger(__name__)


class UserService:
    """Users, roles and role membership."""

    def __init__(self, store: UserStore):
        self.store = store

    async def get_user_by_email(self, email: str) -> AppUser | None:
        return self.store.find_user_by_email(email)

    async def get_roles(self, email: str) -> set[str]:
        """Names of the roles held by the user with this email."""
        user = self.store.find_user_by_email(email)
        if user is None:
            return set()
        return {role.name for role in self.store.roles_for_user(user.id)}

    async def create_role(self, name: str, description: str | None = None) -> Role:
        """
        Create a role.

        Raises:
            ValueError: If a role with that name exists
        """
        if self.store.find_role(name) is not None:
            raise ValueError(f"Role '{name}' already exists")
        role = Role(id=self.store.next_id("roles"), name=name, description=description)
        logger.info(f"Created role {name}")
        return self.store.add_role(role)

    async def get_or_create_role(
        self, name: str, description: str | None = None
    ) -> Role:
        return self.store.find_role(name) or await self.create_role(name, description)

    async def add_user_to_role(self, email: str, role_name: str) -> None:
        """
        Grant a role.

        Raises:
            ValueError: If the user or role does not exist
        """
        user = self.store.find_user_by_email(email)
        if user is None:
            raise ValueError(f"User with email '{email}' not found")
        role = self.store.find_role(role_name)
        if role is None:
            raise ValueError(f"Role '{role_name}' not found")

        link = UserRole(user_id=user.id, role_id=role.id)
        if link not in self.store.user_roles:
            self.store.user_roles.append(link)
        logger.info(f"Added {email} to role {role_name}")

    async def remove_user_from_role(self, email: str, role_name: str) -> None:
        """
        Revoke a role.

        Raises:
            ValueError: If the user does not hold the role
        """
        user = self.store.find_user_by_email(email)
        role = self.store.find_role(role_name)
        link = UserRole(user_id=user.id, role_id=role.id) if user and role else None
        if link is None or link not in self.store.user_roles:
            raise ValueError(f"User '{email}' is not in role '{role_name}'")

        self.store.user_roles.remove(link)
        logger.info(f"Removed {email} from role {role_name}")

    async def invite_to_account(
        self, email: str, account_id: int, role_name: str
    ) -> AccountInvitation:
        """
        Invite an email into an existing account.

        Raises:
            ValueError: If the account or role does not exist
        """
        if self.store.get_account(account_id) is None:
            raise ValueError(f"Account {account_id} not found")
        role = self.store.find_role(role_name)
        if role is None:
            raise ValueError(f"Role '{role_name}' not found")

        invitation = AccountInvitation(email=email, account_id=account_id, role_id=role.id)
        self.store.add_account_invitation(invitation)
        logger.info(f"Invited {email} to account {account_id} as {role_name}")
        return invitation

    async def invite_to_application(
        self, email: str, account_type: str = DEFAULT_ACCOUNT_TYPE
    ) -> ApplicationInvitation:
        """Invite an email to the application under an account type."""
        invitation = ApplicationInvitation(
            email=email,
            account_type_id=self.store.get_or_create_account_type(account_type).id,
        )
        self.store.add_application_invitation(invitation)
        logger.info(f"Invited {email} to the application ({account_type})")
        return invitation

    async def create_user_from_account_invitation(
        self, invitation: AccountInvitation, principal: SessionPrincipal
    ) -> AppUser:
        """
        Create a user inside the invited account, holding the invited role.

        Raises:
            ValueError: If the invited account or role no longer exists
        """
        if self.store.get_account(invitation.account_id) is None:
            raise ValueError(f"Account {invitation.account_id} not found")
        if invitation.role_id not in self.store.roles:
            raise ValueError(f"Role {invitation.role_id} not found")

        user = self.store.add_user(self._new_user(principal, invitation.account_id))
        self.store.user_roles.append(UserRole(user_id=user.id, role_id=invitation.role_id))
        logger.info(
            f"Created user {user.email} from account invitation",
            extra={"account_id": invitation.account_id},
        )
        return user

    async def create_user_from_application_invitation(
        self, invitation: ApplicationInvitation, principal: SessionPrincipal
    ) -> AppUser:
        """Create a new account owned by the user and make them its Administrator."""
        email = principal.email or invitation.email
        account = self.store.add_account(
            Account(
                id=self.store.next_id("accounts"),
                name=email,
                owner=email,
                account_type_id=invitation.account_type_id,
            )
        )
        user = self.store.add_user(self._new_user(principal, account.id))

        admin = await self.get_or_create_role(
            ADMINISTRATOR_ROLE, "Administrator role with full permissions."
        )
        self.store.user_roles.append(UserRole(user_id=user.id, role_id=admin.id))
        logger.info(
            f"Created user {user.email} with new account",
            extra={"account_id": account.id},
        )
        return user

    async def update_user(self, user: AppUser) -> AppUser:
        """Store a modified user, bumping its version."""
        updated = user.model_copy(
            update={"version": user.version + 1, "updated_at": datetime.now(UTC)}
        )
        return self.store.add_user(updated)

    def _new_user(self, principal: SessionPrincipal, account_id: int) -> AppUser:
        return AppUser(
            id=self.store.next_id("users"),
            email=principal.email,
            display_name=principal.display_name,
            provider_key=principal.provider_key,
            provider_type=principal.provider_type,
            profile_picture_url=principal.profile_picture_url,
            account_id=account_id,
        )


class AuthenticationService:
    """Admits signed-in identities into the application."""

    def __init__(self, users: UserService):
        self.users = users
        self.store = users.store

    async def authorize(
        self,
        principal: SessionPrincipal,
        device: DeviceInfo | None = None,
        now: datetime | None = None,
    ) -> SessionPrincipal:
        """
        Admit a principal and return it with its local roles attached.

        Known users must be active and belong to an active account. Unknown
        users are created from an account invitation, or failing that an
        application invitation.

        Raises:
            UserNotAuthorizedError: If the principal has no email, is
                inactive, or was never invited
        """
        now = now or datetime.now(UTC)
        if not principal.email:
            raise UserNotAuthorizedError("Email is required to sign in")

        email = principal.email
        logger.info(f"Authorizing user {email}")

        user = await self.users.get_user_by_email(email)
        if user is None:
            user = await self._create_from_invitation(principal)
        elif not user.is_active(now):
            logger.error(f"User {email} expired on {user.active_until}")
            raise UserNotAuthorizedError("User account is not active")

        account = self.store.get_account(user.account_id)
        if account is None or not account.is_active(now):
            logger.error(f"Account of {email} is not active")
            raise UserNotAuthorizedError("User account is not active")

        user = await self.users.update_user(
            user.model_copy(
                update={
                    "last_login_at": now,
                    "display_name": principal.display_name or user.display_name,
                    "profile_picture_url": principal.profile_picture_url
                    or user.profile_picture_url,
                }
            )
        )
        self._record_login(email, device or DeviceInfo(), now)

        roles = await self.users.get_roles(email)
        return principal.with_roles(principal.roles | roles)

    async def _create_from_invitation(self, principal: SessionPrincipal) -> AppUser:
        email = principal.email or ""

        account_invitation = self.store.find_account_invitation(email)
        if account_invitation is not None:
            logger.info(f"Account invitation found for {email}")
            return await self.users.create_user_from_account_invitation(
                account_invitation, principal
            )

        application_invitation = self.store.find_application_invitation(email)
        if application_invitation is not None:
            logger.info(f"Application invitation found for {email}")
            return await self.users.create_user_from_application_invitation(
                application_invitation, principal
            )

        logger.warning(f"Authorization failed for {email}: no invitation")
        raise UserNotAuthorizedError(f"Unable to authenticate user: {email}")

    def _record_login(self, email: str, device: DeviceInfo, now: datetime) -> None:
        self.store.login_history.append(
            LoginHistory(
                email=email,
                ip_address=device.ip_address,
                browser=device.browser,
                os=device.os,
                logged_in_at=now,
            )
        )


def get_user_service() -> UserService:
    return UserService(get_user_store())


def get_authentication_service() -> AuthenticationService:
    return AuthenticationService(get_user_service())
