"""Options shared by every repository call of a request."""

from dataclasses import dataclass, field, replace

from sqlalchemy.orm import Session

from app.config import settings
from app.core.audit import AuditSink, LoggingAuditSink
from app.models.tenant import Tenant
from app.models.user import User
from app.repositories.session import DatabaseTransaction, TransactionManager


@dataclass
class RepositoryOptions:
    """
    Request context handed to repositories and services.

    Attributes:
        db: SQLAlchemy session used for reads and writes
        transactions: Manager deciding whether units of work are atomic
        session: Open transaction, or None outside a unit of work
        current_user: Authenticated user performing the operation
        current_tenant: Tenant the request is scoped to
        language: Locale for validation errors
        audit: Destination of audit entries
        bypass_permission_validation: Skip tenant visibility checks on user lookups
    """

    db: Session
    transactions: TransactionManager
    session: DatabaseTransaction | None = None
    current_user: User | None = None
    current_tenant: Tenant | None = None
    language: str = settings.DEFAULT_LANGUAGE
    audit: AuditSink = field(default_factory=LoggingAuditSink)
    bypass_permission_validation: bool = False

    @property
    def current_user_id(self) -> int | None:
        return self.current_user.id if self.current_user is not None else None

    @property
    def current_tenant_id(self) -> int | None:
        return self.current_tenant.id if self.current_tenant is not None else None

    def with_session(self, session: DatabaseTransaction | None) -> "RepositoryOptions":
        return replace(self, session=session)

    def with_tenant(self, tenant: Tenant) -> "RepositoryOptions":
        return replace(self, current_tenant=tenant)

    def bypassing_permissions(self) -> "RepositoryOptions":
        return replace(self, bypass_permission_validation=True)

    def __repr__(self) -> str:
        return (
            f"<RepositoryOptions(user_id={self.current_user_id}, "
            f"tenant_id={self.current_tenant_id}, session={self.session})>"
        )
