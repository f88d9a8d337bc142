"""
storefront_data.db.facade

Query façade: the typed read/write API consumed by application code.

Responsibilities:
- Build parameterized SQLAlchemy Core statements from registry tables only.
- Validate column names and values against the registry before dispatch.
- Map returned rows into the entity's row model.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

import sqlalchemy as sa
from pydantic import BaseModel, ValidationError

from storefront_data.db.executors import Executor
from storefront_data.db.schema import Entity, SchemaRegistry
from storefront_data.errors import InvalidQuery, NotFound

RowT = TypeVar("RowT", bound=BaseModel)

Filter = Mapping[str, Any]


class Database:
    """
    Request-scoped handle. Each call is one statement dispatched through the executor;
    nothing groups two calls into a transaction.
    """

    def __init__(self, executor: Executor, registry: SchemaRegistry) -> None:
        self._executor = executor
        self._registry = registry

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    @property
    def executor(self) -> Executor:
        return self._executor

    async def find(
        self,
        entity: Entity[RowT] | str,
        filter: Filter | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[RowT]:
        name, table = self._resolve(entity)
        stmt = sa.select(table).where(*self._where(name, table, filter))
        if order_by is not None:
            column = self._column(name, table, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)
        result = await self._executor.execute(stmt)
        model = self._registry.row_model(name)
        return [model.model_validate(row) for row in result.rows]  # type: ignore[misc]

    async def get(self, entity: Entity[RowT] | str, filter: Filter) -> RowT:
        """Point lookup by a primary-key or unique column; raises `NotFound` on no match."""
        name, _ = self._resolve(entity)
        if not filter or not self._registry.is_unique_key(name, filter.keys()):
            raise InvalidQuery(f"point lookup on {name!r} must filter by a primary-key or unique column")
        rows = await self.find(entity, filter, limit=1)
        if not rows:
            raise NotFound(name, filter)
        return rows[0]

    async def count(self, entity: Entity[Any] | str, filter: Filter | None = None) -> int:
        name, table = self._resolve(entity)
        stmt = (
            sa.select(sa.func.count().label("count"))
            .select_from(table)
            .where(*self._where(name, table, filter))
        )
        result = await self._executor.execute(stmt)
        return int(result.rows[0]["count"]) if result.rows else 0

    async def insert(self, entity: Entity[RowT] | str, values: Mapping[str, Any]) -> RowT:
        name, table = self._resolve(entity)
        data = self._validate_values(name, self._registry.insert_model(name), values)
        stmt = sa.insert(table).values(data).returning(*table.c)
        result = await self._executor.execute(stmt)
        return self._registry.row_model(name).model_validate(result.rows[0])  # type: ignore[return-value]

    async def update(self, entity: Entity[Any] | str, filter: Filter, values: Mapping[str, Any]) -> int:
        name, table = self._resolve(entity)
        if not filter:
            raise InvalidQuery(f"refusing to update every {name!r} row; pass a filter")
        data = self._validate_values(name, self._registry.update_model(name), values)
        if not data:
            raise InvalidQuery(f"update of {name!r} sets no columns")
        stmt = sa.update(table).where(*self._where(name, table, filter)).values(data)
        return (await self._executor.execute(stmt)).rowcount

    async def delete(self, entity: Entity[Any] | str, filter: Filter) -> int:
        name, table = self._resolve(entity)
        if not filter:
            raise InvalidQuery(f"refusing to delete every {name!r} row; pass a filter")
        stmt = sa.delete(table).where(*self._where(name, table, filter))
        return (await self._executor.execute(stmt)).rowcount

    # --- statement building -------------------------------------------------

    def _resolve(self, entity: Entity[Any] | str) -> tuple[str, sa.Table]:
        name = entity if isinstance(entity, str) else entity.name
        if name not in self._registry:
            raise InvalidQuery(f"unknown entity {name!r}")
        return name, self._registry.table(name)

    @staticmethod
    def _column(name: str, table: sa.Table, column: str) -> sa.Column[Any]:
        try:
            return table.c[column]
        except KeyError:
            raise InvalidQuery(f"{name!r} has no column {column!r}") from None

    def _where(self, name: str, table: sa.Table, filter: Filter | None) -> list[sa.ColumnElement[bool]]:
        clauses: list[sa.ColumnElement[bool]] = []
        for key, value in (filter or {}).items():
            column = self._column(name, table, key)
            if value is None:
                clauses.append(column.is_(None))
            elif isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            else:
                clauses.append(column == value)
        return clauses

    @staticmethod
    def _validate_values(name: str, model: type[BaseModel], values: Mapping[str, Any]) -> dict[str, Any]:
        try:
            validated = model.model_validate(dict(values))
        except ValidationError as exc:
            raise InvalidQuery(f"invalid values for {name!r}: {exc}") from exc
        return validated.model_dump(exclude_unset=True)


# --- Module Notes -----------------------------------------------------------
# Identifiers only ever come from registry tables; every value is a bound parameter.
