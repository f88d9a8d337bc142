"""
storefront_data.migrations.pipeline

Applying structural changes as recorded, all-or-nothing batches.

Responsibilities:
- Keep the `__storefront_migrations` bookkeeping table in the target database.
- Turn a list of changes into a versioned `Migration` with a content checksum.
- Apply one migration per executor batch (DDL + record insert together).
- Replay pending versioned migrations in order.
"""

from __future__ import annotations

import hashlib
import importlib
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateTable
from sqlalchemy.sql.base import Executable

from storefront_data.db.executors import Executor
from storefront_data.db.schema import SchemaRegistry
from storefront_data.errors import ConfigurationError, DataLayerError, MigrationFailed
from storefront_data.migrations.changes import Change
from storefront_data.observability.logging import get_logger
from storefront_data.settings import MigrationConfig

log = get_logger(__name__)

BOOKKEEPING_TABLE = sa.Table(
    "__storefront_migrations",
    sa.MetaData(),
    sa.Column("id", sa.Text(), primary_key=True),
    sa.Column("name", sa.Text(), nullable=False),
    sa.Column("checksum", sa.Text(), nullable=False),
    sa.Column("statement_count", sa.Integer(), nullable=False),
    sa.Column("applied_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
)

_RENDER_DIALECT = postgresql.dialect()


@dataclass(frozen=True)
class Migration:
    id: str
    name: str
    statements: tuple[str, ...]
    # DDL elements when built from changes; compiled per executor dialect.
    elements: tuple[Executable, ...] = field(default=(), compare=False, repr=False)

    @property
    def checksum(self) -> str:
        return checksum(self.statements)

    def executables(self) -> list[Executable | str]:
        return list(self.elements) if self.elements else list(self.statements)


@dataclass(frozen=True, slots=True)
class AppliedMigration:
    id: str
    name: str
    checksum: str


def checksum(statements: Sequence[str]) -> str:
    digest = hashlib.sha256()
    for statement in statements:
        digest.update(statement.encode("utf-8"))
        digest.update(b"\0")
    return digest.hexdigest()


def new_version(now: datetime | None = None) -> str:
    # Microsecond timestamps sort lexically in apply order.
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m%d%H%M%S%f")


def render(changes: Sequence[Change]) -> list[str]:
    """Postgres SQL for each DDL element; the text that is checksummed and persisted."""
    return [
        str(element.compile(dialect=_RENDER_DIALECT)).strip()
        for change in changes
        for element in change.ddl()
    ]


def build_migration(changes: Sequence[Change], *, name: str, version: str | None = None) -> Migration:
    return Migration(
        id=version or new_version(),
        name=name,
        statements=tuple(render(changes)),
        elements=tuple(element for change in changes for element in change.ddl()),
    )


async def ensure_bookkeeping(executor: Executor) -> None:
    try:
        await executor.execute(CreateTable(BOOKKEEPING_TABLE, if_not_exists=True))
    except DataLayerError as exc:
        raise MigrationFailed("bookkeeping", f"cannot create {BOOKKEEPING_TABLE.name}: {exc}") from exc


async def applied_migrations(executor: Executor) -> list[AppliedMigration]:
    t = BOOKKEEPING_TABLE
    result = await executor.execute(sa.select(t.c.id, t.c.name, t.c.checksum).order_by(t.c.id))
    return [AppliedMigration(row["id"], row["name"], row["checksum"]) for row in result.rows]


async def apply(changes: Sequence[Change], executor: Executor, *, name: str = "push") -> int:
    """
    Apply `changes` as one batch. Returns the number of changes applied: zero when
    there is nothing to do or the last recorded batch is identical.
    """
    if not changes:
        log.info("migration.skipped", reason="no changes")
        return 0
    migration = build_migration(changes, name=name)
    await ensure_bookkeeping(executor)
    records = await _records(migration, executor)
    # Only the latest record counts: add, drop, add again repeats SQL legitimately.
    if records and records[-1].checksum == migration.checksum:
        log.info("migration.skipped", migration=migration.id, applied_as=records[-1].id)
        return 0
    await _run(migration, executor)
    return len(changes)


async def migrate(migrations: Sequence[Migration], executor: Executor) -> int:
    """Replay pending migrations in version order; returns how many were applied."""
    await ensure_bookkeeping(executor)
    pending = sorted(migrations, key=lambda m: m.id)
    if not pending:
        return 0
    # Versions are identities; equal content under another version still runs.
    applied = {record.id for record in await _records(pending[0], executor)}
    count = 0
    for migration in pending:
        if migration.id in applied:
            log.info("migration.skipped", migration=migration.id)
            continue
        await _run(migration, executor)
        applied.add(migration.id)
        count += 1
    return count


async def _records(migration: Migration, executor: Executor) -> list[AppliedMigration]:
    try:
        return await applied_migrations(executor)
    except DataLayerError as exc:
        raise MigrationFailed(migration.id, f"cannot read applied migrations: {exc}") from exc


async def _run(migration: Migration, executor: Executor) -> None:
    record = sa.insert(BOOKKEEPING_TABLE).values(
        id=migration.id,
        name=migration.name,
        checksum=migration.checksum,
        statement_count=len(migration.statements),
    )
    try:
        await executor.transaction([*migration.executables(), record])
    except DataLayerError as exc:
        log.error("migration.failed", migration=migration.id, error=str(exc))
        raise MigrationFailed(migration.id, str(exc)) from exc
    log.info("migration.applied", migration=migration.id, statements=len(migration.statements))


def load_registry(config: MigrationConfig) -> SchemaRegistry:
    module_name, _, attr = config.schema_source.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"schema_source must look like 'module:attribute', got {config.schema_source!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"cannot import schema module {module_name!r}") from exc
    registry = getattr(module, attr, None)
    if not isinstance(registry, SchemaRegistry):
        raise ConfigurationError(f"{config.schema_source!r} is not a SchemaRegistry")
    return registry


# --- Module Notes -----------------------------------------------------------
# There is no rollback logic here: atomicity comes from the store's transaction
# (the HTTP batch or the engine's BEGIN/COMMIT). Anything else is for an operator.
