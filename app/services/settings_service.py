from typing import Any

from pydantic import BaseModel

from app.models.settings import Settings
from app.repositories.options import RepositoryOptions
from app.repositories.settings_repository import SettingsRepository
from app.schemas.tenant_schemas import SettingsUpdate

DEFAULT_SETTINGS = {"theme": "default"}


class SettingsService:
    """Service for the settings of the current tenant"""

    def __init__(self, options: RepositoryOptions):
        self.options = options

    def find_or_create_default(self) -> Settings:
        """Settings of the current tenant, created with the defaults on first read"""
        return SettingsRepository(self.options).find_or_create_default(DEFAULT_SETTINGS)

    def save(self, data: BaseModel | dict[str, Any]) -> Settings:
        """
        Save the settings of the current tenant.

        Raises:
            NotFoundException: If the tenant's settings were never created
            ValidationError: If the input doesn't match ``SettingsUpdate``
        """
        if not isinstance(data, BaseModel):
            data = SettingsUpdate.model_validate(data)
        values = data.model_dump(exclude_unset=True)
        with self.options.transactions.unit_of_work(self.options) as scoped:
            return SettingsRepository(scoped).save(values)
