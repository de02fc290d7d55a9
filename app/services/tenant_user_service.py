import logging
from typing import Any, Iterable

from app.core.exceptions import ForbiddenException, NotFoundException
from app.models.tenant_user import TenantUser
from app.repositories.options import RepositoryOptions
from app.repositories.tenant_user_repository import RoleUpdateMode, TenantUserRepository
from app.repositories.user_repository import UserRepository
from app.schemas.tenant_schemas import TenantInviteRequest, TenantRoleUpdate

logger = logging.getLogger(__name__)


class TenantUserService:
    """
    Service for the members of the current tenant.

    Each operation is one unit of work, so multi-write operations such as
    accepting an invitation are atomic whenever transactions are enabled.
    """

    def __init__(self, options: RepositoryOptions):
        self.options = options
        self.transactions = options.transactions

    def invite(self, invite_request: TenantInviteRequest | dict[str, Any]) -> tuple[TenantUser, bool]:
        """
        Grant roles in the current tenant to a user identified by e-mail.

        A user record is created for unknown e-mails. A user without a
        membership gets an ``invited`` one with a fresh invitation token.
        Roles are added to the ones already held.

        Returns:
            Tuple of (membership, whether it was created)
        """
        if not isinstance(invite_request, TenantInviteRequest):
            invite_request = TenantInviteRequest.model_validate(invite_request)
        tenant_id = self._require_tenant()

        with self.transactions.unit_of_work(self.options) as scoped:
            users = UserRepository(scoped)
            user = users.find_by_email(invite_request.email)
            if user is None:
                user = users.create({"email": invite_request.email})

            tenant_user, is_creation = TenantUserRepository(scoped).update_roles(
                tenant_id, user.id, invite_request.roles, RoleUpdateMode.ADD
            )

        if is_creation:
            logger.info("Invitation to tenant %s issued for user %s", tenant_id, user.id)
        return tenant_user, is_creation

    def update_roles(self, user_id: int, role_update: TenantRoleUpdate | dict[str, Any]) -> TenantUser:
        """
        Edit the roles of a member of the current tenant.

        Raises:
            ForbiddenException: If members edit their own roles
            NotFoundException: If the user doesn't exist
        """
        if not isinstance(role_update, TenantRoleUpdate):
            role_update = TenantRoleUpdate.model_validate(role_update)
        tenant_id = self._require_tenant()

        if user_id == self.options.current_user_id:
            raise ForbiddenException("Cannot change your own roles")

        with self.transactions.unit_of_work(self.options) as scoped:
            tenant_user, _ = TenantUserRepository(scoped).update_roles(
                tenant_id, user_id, role_update.roles, role_update.mode
            )
        return tenant_user

    def remove(self, user_id: int) -> None:
        """
        Remove a member from the current tenant.

        Raises:
            ForbiddenException: If members try to remove themselves
            NotFoundException: If the user doesn't exist
        """
        tenant_id = self._require_tenant()

        if user_id == self.options.current_user_id:
            raise ForbiddenException("Cannot remove yourself from tenant")

        with self.transactions.unit_of_work(self.options) as scoped:
            TenantUserRepository(scoped).destroy(tenant_id, user_id)

    def accept_invitation(self, invitation_token: str) -> TenantUser:
        """
        Accept an invitation as the current user.

        Raises:
            NotFoundException: If no membership holds the token
        """
        with self.transactions.unit_of_work(self.options) as scoped:
            return TenantUserRepository(scoped).accept_invitation(invitation_token)

    def find_member(self, user_id: int) -> dict[str, Any]:
        """Tenant view of a member of the current tenant"""
        return UserRepository(self.options).find_by_id(user_id)

    def find_and_count_members(self, **query: Any) -> tuple[list[dict[str, Any]], int]:
        return UserRepository(self.options).find_and_count_all(**query)

    def _require_tenant(self) -> int:
        tenant_id = self.options.current_tenant_id
        if tenant_id is None:
            raise NotFoundException("No current tenant")
        return tenant_id
