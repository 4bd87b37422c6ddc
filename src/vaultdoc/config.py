"""
vaultdoc - Configuration and settings.

Settings are read from the environment (and .env) on first use, never at
import time. Missing Supabase credentials are tolerated here; the storage
client raises when it is actually needed.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the document store.

    Supabase credentials are optional so that pure translation code and
    tests can run without a database. Query behaviour knobs live here too.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase (service role, bypasses RLS)
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None

    # Application
    vaultdoc_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Query behaviour
    query_window: int = Field(default=1000, gt=0)  # rows per page window
    strict_queries: bool = True  # unsupported filters/pipelines raise

    # Credential hashing
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    @property
    def is_production(self) -> bool:
        return self.vaultdoc_env == "production"

    @property
    def storage_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: Settings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
