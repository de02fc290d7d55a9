from typing import Any, ClassVar

from pydantic import BaseModel

from app.core.exceptions import ValidationException
from app.repositories.customer_repository import CustomerRepository
from app.repositories.options import RepositoryOptions
from app.repositories.order_repository import OrderRepository
from app.repositories.product_repository import ProductRepository
from app.repositories.tenant_scoped_repository import TenantScopedRepository
from app.schemas.entity_schemas import CustomerInput, OrderInput, ProductInput


class EntityService:
    """
    Service for tenant-scoped entity business logic.

    Every write runs in one unit of work: relation synchronization commits
    or rolls back together with the record, and duplicate values on the
    entity's unique fields come back as validation errors.
    """

    repository_class: ClassVar[type[TenantScopedRepository]]
    input_schema: ClassVar[type[BaseModel]]

    def __init__(self, options: RepositoryOptions):
        self.options = options
        self.transactions = options.transactions

    def create(self, data: BaseModel | dict[str, Any], import_hash: str | None = None):
        """Create a record in the current tenant"""
        values = self._values(data)
        if import_hash is not None:
            values["import_hash"] = import_hash

        with self._unit_of_work() as scoped:
            return self.repository_class(scoped).create(values)

    def update(self, record_id: int, data: BaseModel | dict[str, Any]):
        """
        Update a record of the current tenant.

        Raises:
            NotFoundException: If the record isn't in the current tenant
            ValidationException: If a unique field collides
        """
        values = self._values(data, exclude_unset=True)
        with self._unit_of_work() as scoped:
            return self.repository_class(scoped).update(record_id, values)

    def destroy_all(self, ids: list[int]) -> None:
        """Delete several records; all or none when transactions are enabled"""
        with self._unit_of_work() as scoped:
            repository = self.repository_class(scoped)
            for record_id in ids:
                repository.destroy(record_id)

    def find_by_id(self, record_id: int):
        return self.repository_class(self.options).find_by_id(record_id)

    def find_all_autocomplete(self, search: str | None, limit: int = 0) -> list[dict[str, Any]]:
        return self.repository_class(self.options).find_all_autocomplete(search, limit)

    def find_and_count_all(self, **query: Any):
        return self.repository_class(self.options).find_and_count_all(**query)

    def import_(self, data: BaseModel | dict[str, Any], import_hash: str | None):
        """
        Create a record from an import row.

        Every imported row carries a hash unique within the tenant, so a
        re-run of the same import is rejected instead of duplicating rows.

        Raises:
            ValidationException: If the hash is missing or already imported
        """
        if not import_hash:
            raise ValidationException(self.options.language, "importer.errors.importHashRequired")

        if self._is_import_hash_existent(import_hash):
            raise ValidationException(self.options.language, "importer.errors.importHashExistent")

        return self.create(data, import_hash=import_hash)

    def _is_import_hash_existent(self, import_hash: str) -> bool:
        return self.repository_class(self.options).count(import_hash=import_hash) > 0

    def _unit_of_work(self):
        repository = self.repository_class
        return self.transactions.unit_of_work(
            self.options, repository.entity_name, repository.unique_fields
        )

    def _values(self, data: BaseModel | dict[str, Any], exclude_unset: bool = False) -> dict[str, Any]:
        if not isinstance(data, BaseModel):
            data = self.input_schema.model_validate(data)
        return data.model_dump(exclude_unset=exclude_unset)


class CustomerService(EntityService):
    """Service for Customer records"""

    repository_class = CustomerRepository
    input_schema = CustomerInput


class ProductService(EntityService):
    """Service for Product records"""

    repository_class = ProductRepository
    input_schema = ProductInput


class OrderService(EntityService):
    """Service for Order records"""

    repository_class = OrderRepository
    input_schema = OrderInput
