"""Tenant membership embedded in the user record."""

from enum import Enum as PyEnum

from pydantic import BaseModel, Field


class TenantUserStatus(str, PyEnum):
    """
    Lifecycle of a user's relationship to a tenant.

    - INVITED: pending until the invitation token is accepted
    - ACTIVE: member with at least one role
    - EMPTY_PERMISSIONS: member whose role set became empty
    """

    INVITED = "invited"
    ACTIVE = "active"
    EMPTY_PERMISSIONS = "empty-permissions"


class TenantUser(BaseModel):
    """
    One element of ``User.tenants``.

    Not a table of its own: memberships are loaded, edited and written back
    together with their user. A user holds at most one membership per tenant.
    """

    tenant_id: int
    status: TenantUserStatus
    roles: list[str] = Field(default_factory=list)
    invitation_token: str | None = None

    def to_document(self) -> dict:
        """JSON-ready form stored in the user's ``tenants`` column"""
        return self.model_dump(mode="json")
