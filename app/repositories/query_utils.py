from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import Select

from app.models.base import Base


def sort_clause(model: type[Base], order_by: str | None, default: str):
    """
    Parse ``<field>_ASC`` / ``<field>_DESC`` into an ORDER BY clause.

    Unknown fields fall back to ``default``.
    """
    for value in (order_by, default):
        if not value:
            continue
        field, _, direction = value.rpartition("_")
        if direction.upper() not in ("ASC", "DESC"):
            field, direction = value, "ASC"
        column = getattr(model, field, None)
        if column is not None:
            return column.desc() if direction.upper() == "DESC" else column.asc()
    return model.id.asc()


def apply_created_at_range(
    statement: Select, model: type[Base], created_at_range: Sequence[Any] | None
) -> Select:
    """Filter on ``[start, end]`` (either bound may be None or empty)"""
    if not created_at_range:
        return statement

    start, end = (list(created_at_range) + [None, None])[:2]
    if start not in (None, ""):
        statement = statement.where(model.created_at >= _as_datetime(start))
    if end not in (None, ""):
        statement = statement.where(model.created_at <= _as_datetime(end))
    return statement


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def paginate(statement: Select, limit: int | None, offset: int | None) -> Select:
    """Apply offset/limit; zero or None means unbounded"""
    if offset:
        statement = statement.offset(int(offset))
    if limit:
        statement = statement.limit(int(limit))
    return statement
