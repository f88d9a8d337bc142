from __future__ import annotations

import json

import httpx
import pytest

from storefront_data.db.executors import HttpExecutor, RetryingExecutor
from storefront_data.db.schema import Column, ColumnType, Entity, Reference, SchemaRegistry
from storefront_data.errors import SchemaValidationError
from storefront_data.migrations.changes import AddColumn
from storefront_data.migrations.diff import diff
from storefront_data.migrations.introspect import plan, read_live_schema
from storefront_data.migrations.pipeline import render


def _col(table: str, name: str, data_type: str, *, nullable: bool = False, default: str | None = None, precision=None, scale=None) -> dict:
    return {
        "table_name": table,
        "column_name": name,
        "data_type": data_type,
        "is_nullable": "YES" if nullable else "NO",
        "numeric_precision": precision,
        "numeric_scale": scale,
        "column_default": default,
    }


def _con(table: str, name: str, kind: str, column: str, target: tuple[str, str] | None = None, rule: str | None = None) -> dict:
    return {
        "table_name": table,
        "constraint_name": name,
        "constraint_type": kind,
        "column_name": column,
        "foreign_table": target[0] if target else None,
        "foreign_column": target[1] if target else None,
        "delete_rule": rule,
    }


COLUMNS = [
    _col("__storefront_migrations", "id", "text"),
    _col("categories", "id", "integer", default="nextval('categories_id_seq'::regclass)", precision="32", scale="0"),
    _col("categories", "slug", "text"),
    _col("products", "id", "integer", default="nextval('products_id_seq'::regclass)", precision="32", scale="0"),
    _col("products", "category", "text"),
    _col("products", "price_regular", "numeric", precision="10", scale="2"),
    _col("products", "created_at", "timestamp without time zone", default="now()"),
]

CONSTRAINTS = [
    _con("__storefront_migrations", "__storefront_migrations_pkey", "PRIMARY KEY", "id"),
    _con("categories", "categories_pkey", "PRIMARY KEY", "id"),
    _con("categories", "categories_slug_key", "UNIQUE", "slug"),
    _con("products", "products_pkey", "PRIMARY KEY", "id"),
    _con(
        "products",
        "products_category_categories_slug_fk",
        "FOREIGN KEY",
        "category",
        ("categories", "slug"),
        "NO ACTION",
    ),
]

DECLARED = SchemaRegistry(
    [
        Entity(
            "categories",
            (Column("id", ColumnType.serial, primary_key=True), Column("slug", ColumnType.text, unique=True)),
        ),
        Entity(
            "products",
            (
                Column("id", ColumnType.serial, primary_key=True),
                Column("category", ColumnType.text, references=Reference("categories", "slug")),
                Column("price_regular", ColumnType.numeric, precision=10, scale=2),
                Column("created_at", ColumnType.timestamp),
            ),
        ),
    ]
)


def _executor(columns: list[dict], constraints: list[dict]) -> HttpExecutor:
    def handler(request: httpx.Request) -> httpx.Response:
        query = json.loads(request.content)["query"]
        rows = columns if "information_schema.columns" in query else constraints
        return httpx.Response(200, json={"rows": rows, "rowCount": len(rows)})

    return HttpExecutor(
        endpoint="https://db.test/sql",
        connection_string="postgresql://u:p@db.test/shop",
        timeout=2.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_information_schema_is_read_into_a_registry() -> None:
    live = await read_live_schema(RetryingExecutor(_executor(COLUMNS, CONSTRAINTS)))

    assert live.names == ("categories", "products")
    assert live.columns("categories")["id"].type is ColumnType.serial
    assert live.columns("categories")["slug"].unique
    price = live.columns("products")["price_regular"]
    assert (price.type, price.precision, price.scale) == (ColumnType.numeric, 10, 2)
    (rel,) = live.relationships("products")
    assert (rel.target_entity, rel.target_column, rel.on_delete) == ("categories", "slug", None)

    assert diff(live, DECLARED) == []


@pytest.mark.asyncio
async def test_plan_reports_missing_columns() -> None:
    columns = [c for c in COLUMNS if c["column_name"] != "created_at"]
    changes = await plan(_executor(columns, CONSTRAINTS), DECLARED)
    assert [c.describe() for c in changes] == ["add column products.created_at"]
    assert isinstance(changes[0], AddColumn)


@pytest.mark.asyncio
async def test_unsupported_live_type_is_reported() -> None:
    columns = [*COLUMNS, _col("products", "specs", "jsonb", nullable=True)]
    with pytest.raises(SchemaValidationError, match="jsonb"):
        await read_live_schema(_executor(columns, CONSTRAINTS))


@pytest.mark.asyncio
async def test_drops_use_the_constraint_names_found_in_the_database() -> None:
    # Tables created by another tool carry that tool's constraint names.
    constraints = [
        _con("categories", "categories_pkey", "PRIMARY KEY", "id"),
        _con("categories", "categories_slug_unique", "UNIQUE", "slug"),
        _con("products", "products_pkey", "PRIMARY KEY", "id"),
        _con("products", "products_category_fkey", "FOREIGN KEY", "category", ("categories", "slug"), "NO ACTION"),
    ]
    live = await read_live_schema(_executor(COLUMNS, constraints))

    assert live.columns("categories")["slug"].unique_name == "categories_slug_unique"
    (rel,) = live.relationships("products")
    assert rel.constraint_name == "products_category_fkey"
    assert diff(live, DECLARED) == []

    loosened = SchemaRegistry(
        [
            Entity("categories", (Column("id", ColumnType.serial, primary_key=True), Column("slug", ColumnType.text))),
            Entity(
                "products",
                (
                    Column("id", ColumnType.serial, primary_key=True),
                    Column("category", ColumnType.text),
                    Column("price_regular", ColumnType.numeric, precision=10, scale=2),
                    Column("created_at", ColumnType.timestamp),
                ),
            ),
        ]
    )
    assert render(diff(live, loosened)) == [
        "ALTER TABLE products DROP CONSTRAINT products_category_fkey",
        "ALTER TABLE categories DROP CONSTRAINT categories_slug_unique",
    ]
