from sqlalchemy import String, Integer, Boolean, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.models.base import Base, TimestampMixin, AuthorshipMixin


class Order(Base, TimestampMixin, AuthorshipMixin):
    """
    Tenant-scoped order.

    References one customer (back-reference ``Customer.order_ids``) and many
    products (back-reference ``Product.order_ids``).
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    customer_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    product_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    import_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (UniqueConstraint("tenant_id", "import_hash"),)
