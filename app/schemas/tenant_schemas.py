from pydantic import BaseModel, Field
from app.models.role import TenantRole
from app.repositories.tenant_user_repository import RoleUpdateMode


class TenantCreate(BaseModel):
    """Create a tenant; a random URL is generated when omitted"""

    name: str = Field(..., min_length=1, max_length=255)
    url: str | None = Field(None, max_length=255)


class TenantUpdate(BaseModel):
    """Update tenant name and URL (URL kept when omitted)"""

    name: str = Field(..., min_length=1, max_length=255)
    url: str | None = Field(None, max_length=255)


class TenantInviteRequest(BaseModel):
    """Invite a user, by e-mail, to the current tenant"""

    email: str = Field(..., min_length=3, max_length=255, description="E-mail of the user to invite")
    roles: list[TenantRole] = Field(
        default_factory=lambda: [TenantRole.MEMBER], description="Roles to grant (default: MEMBER)"
    )


class TenantRoleUpdate(BaseModel):
    """Edit a member's roles"""

    roles: list[TenantRole] = Field(default_factory=list)
    mode: RoleUpdateMode = Field(default=RoleUpdateMode.REPLACE, description="add, remove_listed or replace")


class SettingsUpdate(BaseModel):
    """Update the settings of the current tenant"""

    theme: str = Field(..., min_length=1, max_length=100)
