"""Repository for per-tenant Settings."""

from typing import Any

from sqlalchemy import delete, inspect, select

from app.core.audit import AuditAction
from app.core.exceptions import NotFoundException
from app.models.settings import Settings
from app.repositories.options import RepositoryOptions
from app.repositories.session import run_with_session
from app.repositories.tenant_scoped_repository import PROTECTED_FIELDS


class SettingsRepository:
    """Repository for the settings of the current tenant"""

    def __init__(self, options: RepositoryOptions):
        self.options = options
        self.db = options.db

    def find(self) -> Settings | None:
        """Settings of the current tenant, or None if not created yet"""
        return self.db.execute(
            select(Settings).where(Settings.tenant_id == self.options.current_tenant_id)
        ).scalar_one_or_none()

    def find_or_create_default(self, defaults: dict[str, Any]) -> Settings:
        """
        Settings of the current tenant, created from ``defaults`` on first read.

        Args:
            defaults: Column values for a new settings record

        Returns:
            Existing or newly created Settings
        """
        existing = self.find()
        if existing is not None:
            return existing

        settings = Settings(
            **defaults,
            tenant_id=self.options.current_tenant_id,
            created_by=self.options.current_user_id,
            updated_by=self.options.current_user_id,
        )
        run_with_session(lambda db: db.add(settings), self.options)
        return settings

    def save(self, data: dict[str, Any]) -> Settings:
        """
        Update the settings of the current tenant.

        Raises:
            NotFoundException: If the tenant has no settings yet
        """
        record = self.find()
        if record is None:
            raise NotFoundException("Settings not found")

        columns = {attr.key for attr in inspect(Settings).column_attrs}
        values = {
            field: value
            for field, value in data.items()
            if field in columns and field not in PROTECTED_FIELDS
        }

        def write(db):
            for field, value in values.items():
                setattr(record, field, value)
            record.updated_by = self.options.current_user_id

        run_with_session(write, self.options)

        self.options.audit.log("settings", record.id, AuditAction.UPDATE, values)
        return record

    def destroy_for_tenant(self, tenant_id: int) -> None:
        """Delete the settings of a tenant (tenant cascade)"""
        run_with_session(
            lambda db: db.execute(delete(Settings).where(Settings.tenant_id == tenant_id)),
            self.options,
        )
