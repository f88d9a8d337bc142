"""
storefront_data.migrations.introspect

Read the live database structure back into a `SchemaRegistry`.

Responsibilities:
- Engine executors: SQLAlchemy reflection on a fresh connection.
- HTTP executors: `information_schema` queries, one request each.
- Exclude the migration bookkeeping table from the result.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any

import sqlalchemy as sa

from storefront_data.db.executors import EngineExecutor, Executor, RetryingExecutor
from storefront_data.db.schema import Column, ColumnType, Entity, Reference, SchemaRegistry
from storefront_data.errors import SchemaValidationError
from storefront_data.migrations.changes import Change
from storefront_data.migrations.diff import diff
from storefront_data.migrations.pipeline import BOOKKEEPING_TABLE

_COLUMNS_SQL = """
SELECT table_name, column_name, data_type, is_nullable, numeric_precision,
       numeric_scale, column_default
FROM information_schema.columns
WHERE table_schema = 'public'
ORDER BY table_name, ordinal_position
"""

_CONSTRAINTS_SQL = """
SELECT tc.table_name, tc.constraint_name, tc.constraint_type, kcu.column_name,
       ccu.table_name AS foreign_table, ccu.column_name AS foreign_column,
       rc.delete_rule
FROM information_schema.table_constraints tc
JOIN information_schema.key_column_usage kcu
  ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema
LEFT JOIN information_schema.constraint_column_usage ccu
  ON tc.constraint_type = 'FOREIGN KEY'
 AND ccu.constraint_name = tc.constraint_name AND ccu.table_schema = tc.table_schema
LEFT JOIN information_schema.referential_constraints rc
  ON rc.constraint_name = tc.constraint_name AND rc.constraint_schema = tc.table_schema
WHERE tc.table_schema = 'public'
  AND tc.constraint_type IN ('PRIMARY KEY', 'UNIQUE', 'FOREIGN KEY')
"""

_PG_TYPES = {
    "integer": ColumnType.integer,
    "smallint": ColumnType.integer,
    "bigint": ColumnType.bigint,
    "text": ColumnType.text,
    "character varying": ColumnType.text,
    "character": ColumnType.text,
    "boolean": ColumnType.boolean,
    "numeric": ColumnType.numeric,
    "timestamp without time zone": ColumnType.timestamp,
    "timestamp with time zone": ColumnType.timestamp,
}


async def read_live_schema(executor: Executor) -> SchemaRegistry:
    while isinstance(executor, RetryingExecutor):
        executor = executor.inner
    if isinstance(executor, EngineExecutor):
        metadata = await executor.run_sync(_reflect)
        return SchemaRegistry.from_metadata(metadata, exclude=[BOOKKEEPING_TABLE.name])
    columns = await executor.execute(_COLUMNS_SQL)
    constraints = await executor.execute(_CONSTRAINTS_SQL)
    return _from_information_schema(columns.rows, constraints.rows)


async def plan(executor: Executor, declared: SchemaRegistry) -> list[Change]:
    """Changes that would bring the live database in line with `declared`."""
    return diff(await read_live_schema(executor), declared)


def _reflect(conn: sa.Connection) -> sa.MetaData:
    metadata = sa.MetaData()
    metadata.reflect(bind=conn)
    return metadata


def _from_information_schema(
    column_rows: list[dict[str, Any]], constraint_rows: list[dict[str, Any]]
) -> SchemaRegistry:
    pk: dict[str, set[str]] = defaultdict(set)
    unique: dict[str, set[str]] = defaultdict(set)
    unique_sizes: dict[str, int] = defaultdict(int)
    refs: dict[tuple[str, str], Reference] = {}

    for row in constraint_rows:
        kind = row["constraint_type"]
        if kind == "PRIMARY KEY":
            pk[row["table_name"]].add(row["column_name"])
        elif kind == "UNIQUE":
            unique[row["constraint_name"]].add(f"{row['table_name']}.{row['column_name']}")
            unique_sizes[row["constraint_name"]] += 1
        elif kind == "FOREIGN KEY":
            on_delete = row.get("delete_rule")
            refs[(row["table_name"], row["column_name"])] = Reference(
                row["foreign_table"],
                row["foreign_column"],
                None if on_delete in (None, "NO ACTION") else on_delete,
                name=row["constraint_name"],
            )

    # Composite unique constraints do not make a single column unique.
    unique_columns = {col: name for name, cols in unique.items() if unique_sizes[name] == 1 for col in cols}

    by_table: dict[str, list[Column]] = defaultdict(list)
    for row in column_rows:
        table, name = row["table_name"], row["column_name"]
        if table == BOOKKEEPING_TABLE.name:
            continue
        data_type = row["data_type"]
        col_type = _PG_TYPES.get(data_type)
        if col_type is None:
            raise SchemaValidationError(f"{table}.{name} has unsupported type {data_type!r}")
        default = row.get("column_default") or ""
        if col_type is ColumnType.integer and default.startswith("nextval("):
            col_type = ColumnType.serial
        precision = scale = None
        if col_type is ColumnType.numeric:
            precision = _int_or_none(row.get("numeric_precision"))
            scale = _int_or_none(row.get("numeric_scale"))
        is_pk = name in pk.get(table, set())
        by_table[table].append(
            Column(
                name,
                col_type,
                nullable=row["is_nullable"] == "YES" and not is_pk,
                primary_key=is_pk,
                unique=f"{table}.{name}" in unique_columns,
                precision=precision,
                scale=scale,
                references=refs.get((table, name)),
                unique_name=unique_columns.get(f"{table}.{name}"),
            )
        )

    return SchemaRegistry(Entity(table, tuple(cols)) for table, cols in sorted(by_table.items()))


def _int_or_none(value: Any) -> int | None:
    return None if value in (None, "") else int(value)


# --- Module Notes -----------------------------------------------------------
# Only the default schema is read. The bookkeeping table never shows up in a diff.
