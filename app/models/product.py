from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, Text, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.models.base import Base, TimestampMixin, AuthorshipMixin


class Product(Base, TimestampMixin, AuthorshipMixin):
    """Tenant-scoped product; ``order_ids`` mirrors ``Order.product_ids``."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(precision=15, scale=2), nullable=True)
    import_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    order_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("tenant_id", "name"),
        UniqueConstraint("tenant_id", "import_hash"),
    )
