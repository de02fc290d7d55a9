"""Audit sink contract for mutating operations."""

import logging
from enum import Enum as PyEnum
from typing import Any, Protocol


class AuditAction(str, PyEnum):
    """Kinds of audited mutation"""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditSink(Protocol):
    """
    Write-only destination for audit entries.

    Implementations are called once per mutating operation, inside the
    caller's unit of work. Exceptions raised by a sink are not caught and
    fail the surrounding operation.
    """

    def log(
        self, entity_name: str, entity_id: Any, action: AuditAction, values: dict[str, Any]
    ) -> None: ...


class LoggingAuditSink:
    """Default sink: writes one structured line per entry to the ``app.audit`` logger"""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("app.audit")

    def log(
        self, entity_name: str, entity_id: Any, action: AuditAction, values: dict[str, Any]
    ) -> None:
        self.logger.info(
            "%s %s id=%s fields=%s",
            entity_name,
            AuditAction(action).value,
            entity_id,
            sorted(values or {}),
        )
