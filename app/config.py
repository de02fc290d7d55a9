from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Database
    DATABASE_URL: str = "sqlite:///./saas_data.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # When False every write is committed on its own (no multi-document atomicity)
    DATABASE_TRANSACTIONS: bool = True

    # Application
    APP_NAME: str = "SaaS Data Layer"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    DEFAULT_LANGUAGE: str = "en"

    # Tenancy
    FORBIDDEN_TENANT_URLS: str = "www"

    # Token lifetimes
    EMAIL_VERIFICATION_TOKEN_TTL_HOURS: int = 24
    PASSWORD_RESET_TOKEN_TTL_HOURS: int = 24

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @property
    def forbidden_tenant_urls_list(self) -> list[str]:
        """Parse FORBIDDEN_TENANT_URLS from comma-separated string"""
        if not self.FORBIDDEN_TENANT_URLS:
            return []
        return [url.strip() for url in self.FORBIDDEN_TENANT_URLS.split(",") if url.strip()]


# Global settings instance
settings = Settings()
