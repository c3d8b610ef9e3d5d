"""
Settings for the contact reconciliation service.

Values come from environment variables prefixed with ``CONTACTS_`` or from a
local ``.env`` file.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_prefix="CONTACTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_name: str = "contacts.db"
    busy_timeout: float = Field(default=5.0, ge=0)  # seconds
    log_level: str = "INFO"

    app_title: str = "Bitespeed Contact Reconciliation API"
    host: str = "0.0.0.0"
    port: int = 8000


@lru_cache
def get_settings() -> Settings:
    return Settings()
