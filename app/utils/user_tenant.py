"""Helpers relating users to tenants, including the tenant-scoped user view."""

from typing import Any, Iterable

from app.models.tenant_user import TenantUserStatus
from app.models.user import User

# Fields a tenant sees for a member with an active membership
PROFILE_FIELDS = (
    "id",
    "email",
    "first_name",
    "last_name",
    "full_name",
    "phone_number",
    "email_verified",
    "import_hash",
    "created_at",
    "updated_at",
    "created_by",
    "updated_by",
)

# Fields a tenant sees for an invited member or one without permissions
RESTRICTED_FIELDS = ("id", "email")


def is_user_in_tenant(user: User | None, tenant_id: int | None) -> bool:
    """Check whether the user has a membership (any status) in the tenant"""
    if user is None or tenant_id is None:
        return False
    return user.membership_for(tenant_id) is not None


def map_user_for_tenant(user: User, tenant_id: int) -> dict[str, Any] | None:
    """
    The part of a user record visible from a tenant.

    Returns None when the user has no membership in the tenant; callers
    treat that as not found. An active member is shown with the full
    profile, an invited member or one with empty permissions with
    ``id`` and ``email`` only. ``roles`` and ``status`` always describe the
    membership in ``tenant_id``. Credentials and tokens are never included.
    """
    tenant_user = user.membership_for(tenant_id)
    if tenant_user is None:
        return None

    fields = PROFILE_FIELDS if tenant_user.status == TenantUserStatus.ACTIVE else RESTRICTED_FIELDS

    view = {field: getattr(user, field) for field in fields}
    view["roles"] = list(tenant_user.roles)
    view["status"] = tenant_user.status.value
    return view


def map_users_for_tenant(users: Iterable[User], tenant_id: int) -> list[dict[str, Any]]:
    """``map_user_for_tenant`` over a listing, dropping users outside the tenant"""
    views = (map_user_for_tenant(user, tenant_id) for user in users)
    return [view for view in views if view is not None]
