"""Repository for tenant memberships embedded in user records."""

import logging
import secrets
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Iterable

from sqlalchemy import String, cast, select

from app.core.audit import AuditAction
from app.core.exceptions import NotFoundException
from app.models.tenant import Tenant
from app.models.tenant_user import TenantUser, TenantUserStatus
from app.models.user import User
from app.repositories.options import RepositoryOptions
from app.repositories.session import run_with_session

logger = logging.getLogger(__name__)

INVITATION_TOKEN_BYTES = 20


class RoleUpdateMode(str, PyEnum):
    """How ``update_roles`` combines the given roles with the existing ones"""

    ADD = "add"
    REMOVE_LISTED = "remove_listed"
    REPLACE = "replace"


@dataclass
class InvitationMatch:
    """A membership found by its invitation token, with the user holding it"""

    tenant_user: TenantUser
    user: User


def select_status(old_status: TenantUserStatus | str, new_roles: Iterable[str] | None) -> TenantUserStatus:
    """
    Status of a membership after its roles change.

    ``invited`` is sticky: only accepting the invitation leaves it. Otherwise
    an empty role set means ``empty-permissions`` and anything else ``active``.
    """
    if old_status == TenantUserStatus.INVITED:
        return TenantUserStatus.INVITED

    if not list(new_roles or []):
        return TenantUserStatus.EMPTY_PERMISSIONS

    return TenantUserStatus.ACTIVE


def combine_roles(existing: Iterable[str], roles: Iterable[str] | None, mode: RoleUpdateMode) -> list[str]:
    """
    Apply a role edit. The result is a set kept in first-seen order.

    Args:
        existing: Roles currently held
        roles: Roles given by the caller
        mode: ADD (union), REMOVE_LISTED (difference) or REPLACE

    Returns:
        New role list without duplicates
    """
    existing = list(existing or [])
    roles = [str(role.value if isinstance(role, PyEnum) else role) for role in roles or []]

    if mode == RoleUpdateMode.ADD:
        combined = existing + roles
    elif mode == RoleUpdateMode.REMOVE_LISTED:
        combined = [role for role in existing if role not in roles]
    else:
        combined = roles

    return list(dict.fromkeys(combined))


def generate_invitation_token() -> str:
    """Opaque single-use token: 160 random bits as hex"""
    return secrets.token_hex(INVITATION_TOKEN_BYTES)


class TenantUserRepository:
    """
    Membership lifecycle of users in tenants.

    The user record is the aggregate root: every operation reloads the
    user, edits its membership list in memory and writes the whole list
    back. The user's version column turns a concurrent edit made from
    another session into a ``ConcurrentModificationException``.
    """

    def __init__(self, options: RepositoryOptions):
        self.options = options
        self.db = options.db

    def find_by_invitation_token(self, invitation_token: str) -> InvitationMatch | None:
        """
        Find the membership holding ``invitation_token``, across all users.

        Args:
            invitation_token: Token issued by ``update_roles``

        Returns:
            InvitationMatch or None if no membership carries the token
        """
        if not invitation_token:
            return None

        candidates = self.db.execute(
            select(User).where(cast(User.tenants, String).contains(invitation_token))
        ).scalars()

        for user in candidates:
            for tenant_user in user.memberships:
                if tenant_user.invitation_token == invitation_token:
                    return InvitationMatch(tenant_user=tenant_user, user=user)
        return None

    def create(self, tenant: Tenant, user: User, roles: Iterable[str] | None = None) -> TenantUser:
        """
        Append a membership of ``user`` in ``tenant``.

        Status is ``active`` with roles, ``empty-permissions`` without. The
        caller must make sure the user has no membership in the tenant yet.
        """
        roles = combine_roles([], roles, RoleUpdateMode.REPLACE)
        tenant_user = TenantUser(
            tenant_id=tenant.id,
            status=select_status(TenantUserStatus.ACTIVE, roles),
            roles=roles,
        )

        record = self._load_user(user.id)
        self._save_memberships(record, record.memberships + [tenant_user])
        logger.info("User %s joined tenant %s as %s", record.id, tenant.id, tenant_user.status.value)

        self._audit(record, AuditAction.CREATE, tenant_user)
        return tenant_user

    def destroy(self, tenant_id: int, user_id: int) -> None:
        """
        Remove the user's membership in ``tenant_id``; no-op if there is none.

        Raises:
            NotFoundException: If the user doesn't exist
        """
        record = self._load_user(user_id)
        memberships = record.memberships
        remaining = [m for m in memberships if m.tenant_id != tenant_id]

        if len(remaining) == len(memberships):
            return

        self._save_memberships(record, remaining)
        logger.info("User %s left tenant %s", record.id, tenant_id)

        self.options.audit.log("user", record.id, AuditAction.DELETE, {"email": record.email})

    def update_roles(
        self,
        tenant_id: int,
        user_id: int,
        roles: Iterable[str] | None,
        mode: RoleUpdateMode = RoleUpdateMode.REPLACE,
    ) -> tuple[TenantUser, bool]:
        """
        Edit the roles of the user in a tenant, inviting the user first if needed.

        Without an existing membership an ``invited`` one with a fresh
        invitation token and no roles is stored, then edited. Status is
        recomputed with ``select_status`` and stored together with the roles.

        Args:
            tenant_id: Tenant ID
            user_id: User ID
            roles: Roles to add, remove or set
            mode: How ``roles`` combine with the current roles

        Returns:
            Tuple of (updated membership, whether it was created)

        Raises:
            NotFoundException: If the user doesn't exist
        """
        record = self._load_user(user_id)
        tenant_user = record.membership_for(tenant_id)
        is_creation = tenant_user is None

        if is_creation:
            tenant_user = TenantUser(
                tenant_id=tenant_id,
                status=select_status(TenantUserStatus.INVITED, []),
                roles=[],
                invitation_token=generate_invitation_token(),
            )
            self._save_memberships(record, record.memberships + [tenant_user])
            logger.info("User %s invited to tenant %s", record.id, tenant_id)

        new_roles = combine_roles(tenant_user.roles, roles, mode)
        previous_status = tenant_user.status
        tenant_user = tenant_user.model_copy(
            update={"roles": new_roles, "status": select_status(previous_status, new_roles)}
        )

        self._save_memberships(
            record,
            [tenant_user if m.tenant_id == tenant_id else m for m in record.memberships],
        )
        if tenant_user.status != previous_status:
            logger.info(
                "Membership of user %s in tenant %s: %s -> %s",
                record.id,
                tenant_id,
                previous_status.value,
                tenant_user.status.value,
            )

        self._audit(record, AuditAction.CREATE if is_creation else AuditAction.UPDATE, tenant_user)
        return tenant_user, is_creation

    def accept_invitation(self, invitation_token: str) -> TenantUser:
        """
        Turn an invitation into an active membership of the current user.

        The invited membership is removed from the user it was issued to.
        If the current user already belongs to the tenant, that membership is
        replaced and its roles are merged with the invited ones. The result
        has no token and a status derived from the merged roles.

        Must run inside one unit of work for the removal and the insertion to
        be atomic.

        Raises:
            NotFoundException: If no membership holds the token
        """
        current_user = self.options.current_user
        if current_user is None:
            raise NotFoundException("No current user to accept the invitation")

        invitation = self.find_by_invitation_token(invitation_token)
        if invitation is None:
            raise NotFoundException("Invitation not found")

        tenant_id = invitation.tenant_user.tenant_id
        existing = self._load_user(current_user.id).membership_for(tenant_id)

        self.destroy(tenant_id, invitation.user.id)

        roles = list(invitation.tenant_user.roles)
        if existing is not None:
            roles = combine_roles(existing.roles, roles, RoleUpdateMode.ADD)

        tenant_user = TenantUser(
            tenant_id=tenant_id,
            status=select_status(TenantUserStatus.ACTIVE, roles),
            roles=roles,
            invitation_token=None,
        )

        record = self._load_user(current_user.id)
        remaining = [m for m in record.memberships if m.tenant_id != tenant_id]
        self._save_memberships(record, remaining + [tenant_user])
        logger.info("User %s accepted invitation to tenant %s", record.id, tenant_id)

        self._audit(record, AuditAction.UPDATE, tenant_user)
        return tenant_user

    def _load_user(self, user_id: int) -> User:
        """Current state of the user, read right before it is changed"""
        user = self.db.get(User, user_id, populate_existing=True)
        if user is None:
            raise NotFoundException(f"User {user_id} not found")
        return user

    def _save_memberships(self, user: User, memberships: list[TenantUser]) -> None:
        def write(db):
            user.tenants = [membership.to_document() for membership in memberships]
            user.updated_by = self.options.current_user_id
            db.add(user)

        run_with_session(write, self.options)

    def _audit(self, user: User, action: AuditAction, tenant_user: TenantUser) -> None:
        self.options.audit.log(
            "user",
            user.id,
            action,
            {
                "email": user.email,
                "status": tenant_user.status.value,
                "roles": tenant_user.roles,
            },
        )
