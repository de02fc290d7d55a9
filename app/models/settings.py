from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, AuthorshipMixin


class Settings(Base, TimestampMixin, AuthorshipMixin):
    """Per-tenant settings; one row per tenant, created with defaults on first read."""

    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True, index=True)
    theme: Mapped[str] = mapped_column(String(100), nullable=False, default="default")
