"""Translation of unique-index violations into validation errors."""

import logging
import re
from typing import Iterable

from sqlalchemy.exc import IntegrityError

from app.core.exceptions import DuplicateKeyException, ValidationException
from app.models.base import Base

logger = logging.getLogger(__name__)

# Duplicates are scoped per tenant; the tenant column never names the offending field.
TENANT_FIELD = "tenant_id"

_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: (?P<columns>.+)$")
_POSTGRES_KEY = re.compile(r"Key \((?P<columns>[^)]*)\)=")
_MYSQL_DUPLICATE = re.compile(r"Duplicate entry .* for key '(?P<key>[^']+)'")
_POSTGRES_UNIQUE_VIOLATION = "23505"


def duplicate_key_from_integrity_error(error: IntegrityError) -> DuplicateKeyException | None:
    """
    Build a ``DuplicateKeyException`` from a driver-level unique violation.

    Returns None for other integrity errors (NOT NULL, CHECK, ...), which
    must propagate untouched.
    """
    original = error.orig
    message = str(original)

    match = _SQLITE_UNIQUE.search(message)
    if match:
        qualified = [column.strip() for column in match.group("columns").split(",")]
        table = qualified[0].split(".")[0] if "." in qualified[0] else None
        return DuplicateKeyException(table, [column.split(".")[-1] for column in qualified])

    sqlstate = getattr(original, "pgcode", None) or getattr(original, "sqlstate", None)
    if sqlstate == _POSTGRES_UNIQUE_VIOLATION:
        diag = getattr(original, "diag", None)
        table = getattr(diag, "table_name", None)
        match = _POSTGRES_KEY.search(message)
        if match:
            return DuplicateKeyException(
                table, [column.strip() for column in match.group("columns").split(",")]
            )
        return DuplicateKeyException(table, _columns_of_constraint(getattr(diag, "constraint_name", None)))

    match = _MYSQL_DUPLICATE.search(message)
    if match:
        key = match.group("key").split(".")[-1]
        return DuplicateKeyException(None, _columns_of_constraint(key))

    return None


def _columns_of_constraint(name: str | None) -> list[str]:
    """Column names of a named unique constraint or unique index in the model metadata"""
    if not name:
        return []
    for table in Base.metadata.tables.values():
        for constraint in list(table.constraints) + list(table.indexes):
            if constraint.name == name:
                return [column.name for column in constraint.columns]
    return []


def handle_unique_field_error(
    error: BaseException,
    language: str | None,
    entity_name: str,
    unique_fields: Iterable[str] = (),
) -> None:
    """
    Raise a ``ValidationException`` if ``error`` is a duplicate-key failure.

    The message key is ``entities.<entity>.errors.unique.<field>`` where
    ``field`` is the first conflicting field other than the tenant column,
    preferring the fields declared unique for the entity. Any other error is
    left alone: the function returns and the caller re-raises it.
    """
    if isinstance(error, IntegrityError):
        error = duplicate_key_from_integrity_error(error) or error

    if not isinstance(error, DuplicateKeyException):
        return

    unique_fields = set(unique_fields)
    candidates = [field for field in error.fields if field != TENANT_FIELD]
    declared = [field for field in candidates if field in unique_fields]
    offending = (declared or candidates or [None])[0]

    if offending is None:
        return

    logger.info("Duplicate %s.%s translated to validation error", entity_name, offending)
    raise ValidationException(
        language, f"entities.{entity_name}.errors.unique.{offending}"
    ) from error
