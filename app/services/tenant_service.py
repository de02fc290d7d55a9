import logging
from typing import Any

from pydantic import BaseModel

from app.core.exceptions import NotFoundException
from app.models.role import TenantRole
from app.models.tenant import Tenant
from app.repositories.options import RepositoryOptions
from app.repositories.settings_repository import SettingsRepository
from app.repositories.tenant_repository import TenantRepository
from app.repositories.tenant_user_repository import TenantUserRepository
from app.schemas.tenant_schemas import TenantCreate, TenantUpdate
from app.services.settings_service import DEFAULT_SETTINGS

logger = logging.getLogger(__name__)


class TenantService:
    """Service layer for tenant management business logic"""

    def __init__(self, options: RepositoryOptions):
        self.options = options
        self.transactions = options.transactions

    def create(self, data: TenantCreate | dict[str, Any]) -> Tenant:
        """
        Create a tenant owned by the current user.

        The tenant, its default settings and the creator's ``owner``
        membership are written in one unit of work.

        Args:
            data: Tenant name and optional URL

        Returns:
            Created tenant

        Raises:
            NotFoundException: If there is no current user
            ValidationException: If the URL is forbidden or already taken
        """
        if self.options.current_user is None:
            raise NotFoundException("No current user to own the tenant")

        values = self._values(data, TenantCreate)
        with self.transactions.unit_of_work(self.options) as scoped:
            tenant = TenantRepository(scoped).create(values)

            tenant_scoped = scoped.with_tenant(tenant)
            SettingsRepository(tenant_scoped).find_or_create_default(DEFAULT_SETTINGS)
            TenantUserRepository(tenant_scoped).create(
                tenant, self.options.current_user, [TenantRole.OWNER]
            )

        logger.info("User %s created tenant %s", self.options.current_user_id, tenant.id)
        return tenant

    def update(self, tenant_id: int, data: TenantUpdate | dict[str, Any]) -> Tenant:
        """
        Update name and URL of a tenant.

        Raises:
            NotFoundException: If the current user isn't a member
            ValidationException: If the URL is forbidden or already taken
        """
        values = self._values(data, TenantUpdate)
        with self.transactions.unit_of_work(self.options) as scoped:
            return TenantRepository(scoped).update(tenant_id, values)

    def destroy_all(self, ids: list[int]) -> None:
        """Delete tenants with all their data; all or none when transactions are enabled"""
        with self.transactions.unit_of_work(self.options) as scoped:
            repository = TenantRepository(scoped)
            for tenant_id in ids:
                repository.destroy(tenant_id)

    def find_by_id(self, tenant_id: int) -> Tenant | None:
        return TenantRepository(self.options).find_by_id(tenant_id)

    def find_by_url(self, url: str) -> Tenant | None:
        return TenantRepository(self.options).find_by_url(url)

    def find_all_autocomplete(self, search: str | None, limit: int = 0) -> list[dict[str, Any]]:
        return TenantRepository(self.options).find_all_autocomplete(search, limit)

    def find_and_count_all(self, **query: Any) -> tuple[list[Tenant], int]:
        return TenantRepository(self.options).find_and_count_all(**query)

    @staticmethod
    def _values(data: BaseModel | dict[str, Any], schema: type[BaseModel]) -> dict[str, Any]:
        if not isinstance(data, BaseModel):
            data = schema.model_validate(data)
        return data.model_dump(exclude_none=True)
