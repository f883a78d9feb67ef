"""Application configuration objects."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings used to configure the inventory engine."""

    model_config = SettingsConfigDict(
        env_prefix="MEILA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(
        default="Meila Lifestyle Inventory",
        description="Human friendly name for the application.",
    )
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Deployment environment flag used for logging.",
    )
    storage_backend: Literal["memory", "file", "sql"] = Field(
        default="file",
        description="Key-value backend holding the persisted blobs.",
    )
    storage_path: str = Field(
        default="meila_data.json",
        description="JSON file used by the file backend.",
    )
    database_url: str = Field(
        default="sqlite:///./meila.db",
        description="SQLAlchemy compatible database URL used by the sql backend.",
    )
    echo_sql: bool = Field(
        default=False,
        description="Enable SQL echo logging for debugging.",
    )
    inventory_key: str = Field(
        default="meila_inventory_v1",
        description="Storage key of the inventory blob.",
    )
    theme_key: str = Field(
        default="meila_theme_v1",
        description="Storage key of the theme preference.",
    )
    undo_timeout_seconds: float = Field(
        default=4.0,
        gt=0,
        description="Seconds an undoable action stays available.",
    )
    log_level: str = Field(
        default="INFO",
        description="Level applied to the ``meila`` logger.",
    )

    @field_validator("database_url")
    @classmethod
    def _validate_sqlite_path(cls, value: str) -> str:
        if value.startswith("sqlite") and ":memory:" not in value and "///" not in value:
            raise ValueError(
                "SQLite database URLs should be in the form sqlite:///path/to/db"
            )
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper()


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of :class:`Settings`."""

    return Settings()


__all__ = ["Settings", "get_settings"]
