"""Repository for Tenant model operations."""

import logging
import uuid
from typing import Any

from sqlalchemy import String, cast, func, or_, select

from app.config import settings
from app.core.audit import AuditAction
from app.core.exceptions import NotFoundException, ValidationException
from app.models.tenant import Tenant
from app.models.tenant_user import TenantUserStatus
from app.models.user import User
from app.repositories.customer_repository import CustomerRepository
from app.repositories.options import RepositoryOptions
from app.repositories.order_repository import OrderRepository
from app.repositories.product_repository import ProductRepository
from app.repositories.query_utils import apply_created_at_range, paginate, sort_clause
from app.repositories.session import run_with_session
from app.repositories.settings_repository import SettingsRepository
from app.utils.user_tenant import is_user_in_tenant

logger = logging.getLogger(__name__)

# Plan data changes only through update_plan_user / update_plan_status
PLAN_FIELDS = ("plan", "plan_status", "plan_stripe_customer_id", "plan_user_id")

EDITABLE_FIELDS = ("name", "url")

# Repositories whose records are deleted together with their tenant
SCOPED_REPOSITORIES = (CustomerRepository, ProductRepository, OrderRepository)


class TenantRepository:
    """Repository for Tenant model operations"""

    def __init__(self, options: RepositoryOptions):
        self.options = options
        self.db = options.db

    def create(self, data: dict[str, Any]) -> Tenant:
        """
        Create a new tenant.

        Args:
            data: ``name`` and optional ``url`` (a random UUID when omitted)

        Returns:
            Created Tenant

        Raises:
            ValidationException: If the URL is forbidden or already taken
        """
        data = dict(data)
        data["url"] = data.get("url") or str(uuid.uuid4())
        self._validate_url(data["url"])

        tenant = Tenant(
            name=data["name"],
            url=data["url"],
            created_by=self.options.current_user_id,
            updated_by=self.options.current_user_id,
        )
        run_with_session(lambda db: db.add(tenant), self.options)
        logger.info("Tenant %s created with url %s", tenant.id, tenant.url)

        self.options.audit.log("tenant", tenant.id, AuditAction.CREATE, data)
        return self.find_by_id(tenant.id)

    def update(self, tenant_id: int, data: dict[str, Any]) -> Tenant:
        """
        Update name and URL of a tenant the current user belongs to.

        An omitted URL keeps the current one. Plan fields are ignored.

        Raises:
            NotFoundException: If the tenant doesn't exist or the user isn't a member
            ValidationException: If the URL is forbidden or taken by another tenant
        """
        tenant = self._find_for_member(tenant_id)

        values = {field: data[field] for field in EDITABLE_FIELDS if field in data}
        values["url"] = values.get("url") or tenant.url
        self._validate_url(values["url"], exclude_id=tenant_id)

        def write(db):
            for field, value in values.items():
                setattr(tenant, field, value)
            tenant.updated_by = self.options.current_user_id

        run_with_session(write, self.options)

        self.options.audit.log("tenant", tenant_id, AuditAction.UPDATE, values)
        return self.find_by_id(tenant_id)

    def update_plan_user(
        self, tenant_id: int, plan_stripe_customer_id: str | None, plan_user_id: int | None
    ) -> Tenant:
        """Attach the billing customer and the user paying for the plan"""
        tenant = self._get(tenant_id)
        values = {
            "plan_stripe_customer_id": plan_stripe_customer_id,
            "plan_user_id": plan_user_id,
            "updated_by": self.options.current_user_id,
        }

        def write(db):
            for field, value in values.items():
                setattr(tenant, field, value)

        run_with_session(write, self.options)

        self.options.audit.log("tenant", tenant_id, AuditAction.UPDATE, values)
        return tenant

    def update_plan_status(self, plan_stripe_customer_id: str, plan: str, plan_status: str) -> Tenant:
        """
        Set plan and plan status of the tenant billed to a customer.

        Called by billing callbacks, so no user is recorded as the author.

        Raises:
            NotFoundException: If no tenant has this billing customer
        """
        tenant = self.db.execute(
            select(Tenant).where(Tenant.plan_stripe_customer_id == plan_stripe_customer_id)
        ).scalars().first()
        if tenant is None:
            raise NotFoundException(f"No tenant billed to {plan_stripe_customer_id}")

        values = {"plan": plan, "plan_status": plan_status, "updated_by": None}

        def write(db):
            for field, value in values.items():
                setattr(tenant, field, value)

        run_with_session(write, self.options)

        self.options.audit.log("tenant", tenant.id, AuditAction.UPDATE, values)
        return tenant

    def destroy(self, tenant_id: int) -> None:
        """
        Delete a tenant the current user belongs to, with everything it owns.

        Customers, products, orders and settings of the tenant are deleted and
        the tenant is removed from the memberships of every user. Users stay.

        Raises:
            NotFoundException: If the tenant doesn't exist or the user isn't a member
        """
        tenant = self._find_for_member(tenant_id)
        values = tenant.to_dict()

        run_with_session(lambda db: db.delete(tenant), self.options)
        self.options.audit.log("tenant", tenant_id, AuditAction.DELETE, values)

        for repository in SCOPED_REPOSITORIES:
            repository(self.options).destroy_all_for_tenant(tenant_id)
        SettingsRepository(self.options).destroy_for_tenant(tenant_id)

        self._detach_users(tenant_id)
        logger.info("Tenant %s deleted", tenant_id)

    def count(self, **filters: Any) -> int:
        """Number of tenants matching exact field values"""
        return self.db.execute(
            select(func.count()).select_from(Tenant).filter_by(**filters)
        ).scalar_one()

    def find_by_id(self, tenant_id: int) -> Tenant | None:
        """Tenant by ID (its settings are reachable as ``tenant.settings``)"""
        return self.db.get(Tenant, tenant_id)

    def find_by_url(self, url: str) -> Tenant | None:
        return self.db.execute(select(Tenant).where(Tenant.url == url)).scalar_one_or_none()

    def find_default(self) -> Tenant | None:
        """The first tenant, for single-tenant deployments"""
        return self.db.execute(select(Tenant).order_by(Tenant.id.asc()).limit(1)).scalar_one_or_none()

    def find_and_count_all(
        self,
        filter: dict[str, Any] | None = None,
        limit: int = 0,
        offset: int = 0,
        order_by: str | None = None,
    ) -> tuple[list[Tenant], int]:
        """
        Tenants where the current user is invited or active.

        ``filter`` keys: ``id``, ``name`` (partial, case-insensitive) and
        ``created_at_range``. Default order is ``name_ASC``.

        Returns:
            Tuple of (tenants, total count before pagination)
        """
        filter = filter or {}
        tenant_ids = self._current_user_tenant_ids(
            (TenantUserStatus.INVITED, TenantUserStatus.ACTIVE)
        )

        statement = select(Tenant).where(Tenant.id.in_(tenant_ids))
        if filter.get("id"):
            statement = statement.where(Tenant.id == int(filter["id"]))
        if filter.get("name"):
            statement = statement.where(Tenant.name.ilike(f"%{filter['name']}%"))
        statement = apply_created_at_range(statement, Tenant, filter.get("created_at_range"))

        total = self.db.execute(select(func.count()).select_from(statement.subquery())).scalar_one()

        statement = statement.order_by(sort_clause(Tenant, order_by, "name_ASC"))
        rows = list(self.db.execute(paginate(statement, limit, offset)).scalars())
        return rows, total

    def find_all_autocomplete(self, search: str | None, limit: int = 0) -> list[dict[str, Any]]:
        """``{id, label}`` pairs of the current user's tenants, any status"""
        statement = select(Tenant).where(Tenant.id.in_(self._current_user_tenant_ids()))
        if search:
            criteria = [Tenant.name.ilike(f"%{search}%")]
            if str(search).isdigit():
                criteria.append(Tenant.id == int(search))
            statement = statement.where(or_(*criteria))

        statement = paginate(statement.order_by(Tenant.name.asc()), limit, 0)
        return [
            {"id": tenant.id, "label": tenant.name}
            for tenant in self.db.execute(statement).scalars()
        ]

    def _validate_url(self, url: str, exclude_id: int | None = None) -> None:
        statement = select(func.count()).select_from(Tenant).where(Tenant.url == url)
        if exclude_id is not None:
            statement = statement.where(Tenant.id != exclude_id)
        exists = bool(self.db.execute(statement).scalar_one())

        if url in settings.forbidden_tenant_urls_list or exists:
            raise ValidationException(self.options.language, "tenant.url.exists")

    def _get(self, tenant_id: int) -> Tenant:
        tenant = self.find_by_id(tenant_id)
        if tenant is None:
            raise NotFoundException(f"Tenant {tenant_id} not found")
        return tenant

    def _find_for_member(self, tenant_id: int) -> Tenant:
        if not is_user_in_tenant(self.options.current_user, tenant_id):
            raise NotFoundException(f"Tenant {tenant_id} not found")
        return self._get(tenant_id)

    def _current_user_tenant_ids(self, statuses=None) -> list[int]:
        user = self.options.current_user
        if user is None:
            return []
        return [
            membership.tenant_id
            for membership in user.memberships
            if statuses is None or membership.status in statuses
        ]

    def _detach_users(self, tenant_id: int) -> None:
        """Pull ``tenant_id`` out of the embedded memberships of every user"""
        members = [
            user
            for user in self.db.execute(
                select(User).where(cast(User.tenants, String).contains(str(tenant_id)))
            ).scalars()
            if user.membership_for(tenant_id) is not None
        ]

        def write(db):
            for user in members:
                user.tenants = [
                    document for document in user.tenants if document["tenant_id"] != tenant_id
                ]

        run_with_session(write, self.options)
        logger.info("Tenant %s detached from %d users", tenant_id, len(members))
