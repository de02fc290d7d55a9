from datetime import datetime
from sqlalchemy import String, Integer, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from app.models.base import Base, TimestampMixin, AuthorshipMixin
from app.models.tenant_user import TenantUser


class User(Base, TimestampMixin, AuthorshipMixin):
    """
    Free-standing user account.

    Tenant memberships are embedded in ``tenants`` (a JSON list of
    ``TenantUser`` documents) and always written back as a whole.
    ``version_id`` is the optimistic-lock column: a write from a stale copy
    of the row fails instead of silently overwriting a concurrent change.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    # Profile
    first_name: Mapped[str | None] = mapped_column(String(80), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(175), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    phone_number: Mapped[str | None] = mapped_column(String(24), nullable=True)
    import_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Credentials and tokens (never part of a tenant view)
    password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_verification_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email_verification_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    password_reset_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password_reset_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    jwt_token_invalid_before: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    tenants: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def memberships(self) -> list[TenantUser]:
        """Embedded memberships parsed into ``TenantUser`` objects"""
        return [TenantUser.model_validate(document) for document in self.tenants or []]

    def membership_for(self, tenant_id: int) -> TenantUser | None:
        """The membership for ``tenant_id`` or None"""
        for membership in self.memberships:
            if membership.tenant_id == tenant_id:
                return membership
        return None

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
