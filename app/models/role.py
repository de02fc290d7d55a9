"""Role identifiers granted through tenant memberships."""

from enum import Enum as PyEnum


class TenantRole(str, PyEnum):
    """
    Well-known role identifiers.

    A membership holds a *set* of role identifiers. Storage accepts any
    string so that applications can define further roles; these are the
    ones the data layer itself assigns.

    - OWNER: granted to the user who creates a tenant
    - ADMIN: manages members and data
    - MEMBER: reads and writes tenant data
    - VIEWER: read-only access
    """

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"
