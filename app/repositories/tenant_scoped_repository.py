"""Generic repository for records owned by a tenant."""

from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import delete, func, inspect, or_, select

from app.core.audit import AuditAction
from app.core.exceptions import NotFoundException
from app.models.base import Base
from app.repositories.options import RepositoryOptions
from app.repositories.query_utils import apply_created_at_range, paginate, sort_clause
from app.repositories.relations import Relation, destroy_relation, sync_relation
from app.repositories.session import run_with_session

ModelType = TypeVar("ModelType", bound=Base)

# Set by the repository, never taken from input data
PROTECTED_FIELDS = ("id", "tenant_id", "created_by", "updated_by", "created_at", "updated_at")


class TenantScopedRepository(Generic[ModelType]):
    """
    CRUD for a tenant-owned model, isolated by ``options.current_tenant``.

    Subclasses declare the model, its audit/entity name, the fields that
    are unique per tenant, and the relations whose source field lives on
    the model. Writes go through ``run_with_session`` so they join the
    caller's unit of work; relations are synchronized right after the
    record itself is written.
    """

    model: ClassVar[type[Base]]
    entity_name: ClassVar[str]
    unique_fields: ClassVar[tuple[str, ...]] = ()
    relations: ClassVar[tuple[Relation, ...]] = ()
    search_fields: ClassVar[tuple[str, ...]] = ()
    label_field: ClassVar[str] = "name"
    default_order_by: ClassVar[str] = "created_at_DESC"

    def __init__(self, options: RepositoryOptions):
        self.options = options
        self.db = options.db

    def create(self, data: dict[str, Any]) -> ModelType:
        """Create a record in the current tenant and synchronize its relations"""
        record = self.model(
            **self._writable(data),
            tenant_id=self.options.current_tenant_id,
            created_by=self.options.current_user_id,
            updated_by=self.options.current_user_id,
        )
        run_with_session(lambda db: db.add(record), self.options)

        self._sync_relations(record)
        self.options.audit.log(self.entity_name, record.id, AuditAction.CREATE, dict(data))

        return self.find_by_id(record.id)

    def update(self, record_id: int, data: dict[str, Any]) -> ModelType:
        """
        Update a record of the current tenant.

        Raises:
            NotFoundException: If the record doesn't exist in this tenant
        """
        record = self.find_by_id(record_id)
        values = self._writable(data)

        def write(db):
            for field, value in values.items():
                setattr(record, field, value)
            record.updated_by = self.options.current_user_id

        run_with_session(write, self.options)

        self._sync_relations(record)
        self.options.audit.log(self.entity_name, record.id, AuditAction.UPDATE, dict(data))

        return self.find_by_id(record.id)

    def destroy(self, record_id: int) -> None:
        """
        Delete a record of the current tenant and clear references to it.

        Raises:
            NotFoundException: If the record doesn't exist in this tenant
        """
        record = self.find_by_id(record_id)
        values = record.to_dict()

        run_with_session(lambda db: db.delete(record), self.options)

        for relation in self.relations:
            destroy_relation(record_id, relation, self.options)

        self.options.audit.log(self.entity_name, record_id, AuditAction.DELETE, values)

    def destroy_all_for_tenant(self, tenant_id: int) -> None:
        """Delete every record of a tenant (tenant cascade; relations die with it)"""
        run_with_session(
            lambda db: db.execute(delete(self.model).where(self.model.tenant_id == tenant_id)),
            self.options,
        )

    def find_by_id(self, record_id: int) -> ModelType:
        """
        Get a record by ID, ensuring it belongs to the current tenant.

        Raises:
            NotFoundException: If not found or owned by another tenant
        """
        record = self.db.execute(
            select(self.model).where(
                self.model.id == record_id,
                self.model.tenant_id == self.options.current_tenant_id,
            )
        ).scalar_one_or_none()

        if record is None:
            raise NotFoundException(f"{self.entity_name.capitalize()} {record_id} not found")
        return record

    def count(self, **filters: Any) -> int:
        """Number of records in the current tenant matching exact field values"""
        statement = (
            select(func.count())
            .select_from(self.model)
            .where(self.model.tenant_id == self.options.current_tenant_id)
            .filter_by(**filters)
        )
        return self.db.execute(statement).scalar_one()

    def find_and_count_all(
        self,
        filter: dict[str, Any] | None = None,
        limit: int = 0,
        offset: int = 0,
        order_by: str | None = None,
    ) -> tuple[list[ModelType], int]:
        """
        Records of the current tenant with filters.

        ``filter`` keys: ``id``, ``created_at_range`` ([start, end]), any of
        ``search_fields`` (case-insensitive partial match) and any other
        column (exact match).

        Returns:
            Tuple of (records, total count before pagination)
        """
        statement = select(self.model).where(
            self.model.tenant_id == self.options.current_tenant_id
        )
        statement = self._apply_filter(statement, filter or {})

        total = self.db.execute(
            select(func.count()).select_from(statement.subquery())
        ).scalar_one()

        statement = statement.order_by(sort_clause(self.model, order_by, self.default_order_by))
        rows = list(self.db.execute(paginate(statement, limit, offset)).scalars())
        return rows, total

    def find_all_autocomplete(self, search: str | None, limit: int = 0) -> list[dict[str, Any]]:
        """``{id, label}`` pairs of the current tenant matching ``search`` by id or label"""
        label = getattr(self.model, self.label_field)
        statement = select(self.model).where(
            self.model.tenant_id == self.options.current_tenant_id
        )
        if search:
            criteria = [label.ilike(f"%{search}%")]
            if str(search).isdigit():
                criteria.append(self.model.id == int(search))
            statement = statement.where(or_(*criteria))

        statement = paginate(statement.order_by(label.asc()), limit, 0)
        return [
            {"id": record.id, "label": getattr(record, self.label_field)}
            for record in self.db.execute(statement).scalars()
        ]

    def _apply_filter(self, statement, filter: dict[str, Any]):
        columns = self._column_names()
        for field, value in filter.items():
            if value is None or value == "":
                continue
            if field == "created_at_range":
                statement = apply_created_at_range(statement, self.model, value)
            elif field in self.search_fields:
                statement = statement.where(getattr(self.model, field).ilike(f"%{value}%"))
            elif field in columns:
                statement = statement.where(getattr(self.model, field) == value)
        return statement

    def _sync_relations(self, record: ModelType) -> None:
        for relation in self.relations:
            sync_relation(record, relation, self.options)

    def _writable(self, data: dict[str, Any]) -> dict[str, Any]:
        columns = self._column_names()
        return {
            field: value
            for field, value in data.items()
            if field in columns and field not in PROTECTED_FIELDS
        }

    def _column_names(self) -> set[str]:
        return {attr.key for attr in inspect(self.model).column_attrs}
