"""
storefront_data.errors

Error taxonomy for the data layer.

Startup-class errors (`ConfigurationError`, `SchemaValidationError`) halt process
initialization. `MigrationFailed` is scoped to one migration batch. The rest are
raised per call to whoever invoked the query.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class DataLayerError(Exception):
    """Base class for every error raised by storefront_data."""


class ConfigurationError(DataLayerError):
    """Missing or invalid connection configuration."""


class SchemaValidationError(DataLayerError):
    """Malformed entity, column or relationship declarations."""


class MigrationFailed(DataLayerError):
    def __init__(self, migration_id: str, reason: str) -> None:
        super().__init__(
            f"migration {migration_id} failed: {reason}. "
            "The batch was not recorded as applied; inspect the database and "
            "re-run once the cause is fixed."
        )
        self.migration_id = migration_id
        self.reason = reason


class InvalidQuery(DataLayerError):
    """A query referenced an unknown entity/column or carried invalid values."""


class NotFound(DataLayerError):
    def __init__(self, entity: str, filter: Mapping[str, Any]) -> None:
        super().__init__(f"no {entity} row matches {dict(filter)!r}")
        self.entity = entity
        self.filter = dict(filter)


class TransportError(DataLayerError):
    """The request channel to the database failed (network, timeout, gateway)."""


class DatabaseError(DataLayerError):
    def __init__(self, message: str, *, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


class ConstraintViolation(DatabaseError):
    """Unique, foreign-key, not-null or check constraint rejected a write."""


# --- Module Notes -----------------------------------------------------------
# Callers catch DataLayerError; the API maps each subclass to a status code.
