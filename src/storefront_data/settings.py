"""
storefront_data.settings

Central configuration models (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for the data layer and read API.
- Keep the database URL out of repr/logging.
- Describe where the migration pipeline finds the schema and writes artifacts.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process configuration, constructed once and passed explicitly.

    Frozen so a descriptor resolved from it can never drift from its source.
    """

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "storefront-data"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # The one required value. Missing is reported by `db.connection.resolve`, not here,
    # so that constructing settings never fails on its own.
    database_url: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("DATABASE_URL", "STOREFRONT_DATABASE_URL", "database_url"),
    )
    # Overrides the derived `https://<host>/sql` endpoint of the serverless HTTP driver.
    sql_http_endpoint: str | None = None
    query_timeout_seconds: float = Field(default=10.0, gt=0)


class MigrationConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_MIGRATIONS_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # "<module>:<attribute>" resolving to a SchemaRegistry.
    schema_source: str = "storefront_data.db.catalog:registry"
    out_dir: Path = Path("migrations")
    dialect: Literal["postgresql"] = "postgresql"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Tests construct `Settings(...)` directly instead of going through `get_settings`.
