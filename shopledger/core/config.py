# shopledger/core/config.py

import os
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from shopledger.core.enums import StockAdjustmentPolicy


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings. Empty means the service runs on the in-memory fallback store.
    DATABASE_URL: str = ""
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800
    DB_PROBE_TIMEOUT: float = 5.0

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Ledger behaviour
    STOCK_ADJUSTMENT_POLICY: StockAdjustmentPolicy = StockAdjustmentPolicy.BEST_EFFORT
    TRANSACTION_ID_MAX_ATTEMPTS: int = 3

    # Basic Auth
    AUTH_ENABLED: bool = False
    ADMIN_EMAIL: str = "admin@example.com"
    ADMIN_PASSWORD: str = "changeme"
    ADMIN_NAME: str = "Admin User"

    model_config = SettingsConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def async_database_url(self) -> str:
        """DATABASE_URL with the async driver filled in for PostgreSQL."""
        url = self.DATABASE_URL
        if url.startswith('postgresql://'):
            url = url.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return url


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()

def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
