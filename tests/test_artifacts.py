from __future__ import annotations

import json

import httpx
import pytest

from storefront_data.db.executors import HttpExecutor
from storefront_data.db.schema import Column, ColumnType, Entity, SchemaRegistry
from storefront_data.errors import MigrationFailed
from storefront_data.migrations.artifacts import BREAKPOINT, generate, load_migrations, read_journal, slugify
from storefront_data.migrations.diff import diff
from storefront_data.migrations.pipeline import migrate
from storefront_data.settings import MigrationConfig

V1 = SchemaRegistry([Entity("notes", (Column("id", ColumnType.serial, primary_key=True),))])
V2 = SchemaRegistry(
    [
        Entity(
            "notes",
            (
                Column("id", ColumnType.serial, primary_key=True),
                Column("body", ColumnType.text, nullable=True),
            ),
        )
    ]
)


class FakeStore:
    """Just enough of the SQL-over-HTTP endpoint to track the bookkeeping table."""

    def __init__(self) -> None:
        self.applied: list[dict[str, str]] = []
        self.batches: list[list[str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if "queries" in body:
            self.batches.append([q["query"] for q in body["queries"]])
            record = body["queries"][-1]["params"]
            self.applied.append({"id": record[0], "name": record[1], "checksum": record[2]})
            return httpx.Response(200, json={"results": [{"rows": [], "rowCount": 0} for _ in body["queries"]]})
        if body["query"].lstrip().startswith("SELECT"):
            return httpx.Response(200, json={"rows": self.applied, "rowCount": len(self.applied)})
        return httpx.Response(200, json={"rows": [], "rowCount": 0})

    def executor(self) -> HttpExecutor:
        return HttpExecutor(
            endpoint="https://db.test/sql",
            connection_string="postgresql://u:p@db.test/shop",
            timeout=2.0,
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def config(tmp_path) -> MigrationConfig:
    return MigrationConfig(out_dir=tmp_path / "migrations")


def test_slugify() -> None:
    assert slugify("Add order items!") == "add_order_items"
    assert slugify("---") == "migration"


def test_generate_writes_sql_and_journal(config: MigrationConfig) -> None:
    path = generate(diff(None, V1), config, name="Create notes")
    assert path is not None
    assert path.name.endswith("_create_notes.sql")
    assert "CREATE TABLE notes" in path.read_text(encoding="utf-8")

    journal = read_journal(config.out_dir)
    assert journal["dialect"] == "postgresql"
    (entry,) = journal["entries"]
    assert entry["file"] == path.name
    assert entry["name"] == "Create notes"


def test_generate_without_changes_writes_nothing(config: MigrationConfig) -> None:
    assert generate([], config, name="noop") is None
    assert not config.out_dir.exists()


def test_multi_statement_files_use_breakpoints(config: MigrationConfig) -> None:
    two_tables = SchemaRegistry([V1.entity("notes"), Entity("tags", (Column("id", ColumnType.serial, primary_key=True),))])
    path = generate(diff(None, two_tables), config, name="two")
    assert path is not None
    assert path.read_text(encoding="utf-8").count(BREAKPOINT) == 1
    (migration,) = load_migrations(config.out_dir)
    assert len(migration.statements) == 2


@pytest.mark.asyncio
async def test_generated_migrations_replay_once_in_order(config: MigrationConfig) -> None:
    generate(diff(None, V1), config, name="notes")
    generate(diff(V1, V2), config, name="notes body")
    migrations = load_migrations(config.out_dir)
    assert [m.name for m in migrations] == ["notes", "notes body"]

    store = FakeStore()
    assert await migrate(migrations, store.executor()) == 2
    assert await migrate(migrations, store.executor()) == 0

    first, second = store.batches
    assert "CREATE TABLE notes" in first[0]
    assert second[0] == "ALTER TABLE notes ADD COLUMN body TEXT"
    assert [a["id"] for a in store.applied] == [m.id for m in migrations]


def test_edited_migration_file_is_refused(config: MigrationConfig) -> None:
    path = generate(diff(None, V1), config, name="notes")
    assert path is not None
    path.write_text(path.read_text(encoding="utf-8").replace("notes", "memos"), encoding="utf-8")
    with pytest.raises(MigrationFailed, match="modified after it was generated"):
        load_migrations(config.out_dir)
