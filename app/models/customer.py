from sqlalchemy import String, Integer, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.models.base import Base, TimestampMixin, AuthorshipMixin


class Customer(Base, TimestampMixin, AuthorshipMixin):
    """
    Tenant-scoped customer.

    ``order_ids`` mirrors ``Order.customer_id``; both sides are kept in sync
    by the relation synchronizer, never written directly.
    """

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(24), nullable=True)
    import_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    order_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    # Unique per tenant, not globally
    __table_args__ = (
        UniqueConstraint("tenant_id", "email"),
        UniqueConstraint("tenant_id", "import_hash"),
    )
