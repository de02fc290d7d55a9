"""Tenant model for multi-tenant isolation."""

from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.models.base import Base, TimestampMixin, AuthorshipMixin
from app.models.settings import Settings


class Tenant(Base, TimestampMixin, AuthorshipMixin):
    """
    Multi-tenant isolation boundary.

    A tenant is a customer organization owning its own data scope. Every
    customer, product, order and settings record carries the tenant id;
    users reach a tenant through the memberships embedded in their record.

    The URL slug is globally unique (case-sensitive) and never one of the
    forbidden names (``www`` by default). Deleting a tenant deletes its
    scoped records and detaches it from every user; users themselves stay.
    """

    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # Plan metadata, changed only through the plan-specific repository calls
    plan: Mapped[str] = mapped_column(String(50), nullable=False, default="free")
    plan_status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    plan_stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    plan_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # 1:1, created lazily on first read
    settings: Mapped[Settings | None] = relationship(
        Settings,
        primaryjoin="Tenant.id == foreign(Settings.tenant_id)",
        uselist=False,
        viewonly=True,
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name='{self.name}', url='{self.url}')>"
