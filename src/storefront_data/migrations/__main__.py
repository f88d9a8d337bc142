"""
storefront_data.migrations.__main__

Operator CLI: `python -m storefront_data.migrations <command>`.

Commands:
- generate NAME  diff live vs declared schema and write a versioned artifact
- migrate        replay pending artifacts from the output directory
- push           diff and apply directly, without writing artifacts
- check          exit 1 when the live schema differs from the declared one
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer

from storefront_data.db.connection import create_executor, resolve
from storefront_data.db.executors import Executor
from storefront_data.db.schema import SchemaRegistry
from storefront_data.errors import DataLayerError
from storefront_data.migrations import artifacts, pipeline
from storefront_data.migrations.introspect import plan
from storefront_data.observability.logging import configure_logging
from storefront_data.settings import MigrationConfig, Settings

T = TypeVar("T")

app = typer.Typer(no_args_is_help=True, add_completion=False, help="Schema migrations for the storefront database.")


def _setup() -> tuple[MigrationConfig, SchemaRegistry, Executor]:
    settings = Settings()
    configure_logging(service_name=f"{settings.service_name}-migrations", level=settings.log_level, stream=sys.stderr)
    config = MigrationConfig()
    registry = pipeline.load_registry(config)
    executor = create_executor(resolve(settings), timeout=settings.query_timeout_seconds)
    return config, registry, executor


def _run(coro_factory: Callable[[MigrationConfig, SchemaRegistry, Executor], Awaitable[T]]) -> T:
    try:
        config, registry, executor = _setup()
        return asyncio.run(coro_factory(config, registry, executor))
    except DataLayerError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def generate(name: str = typer.Argument(..., help="Short description, used in the file name.")) -> None:
    """Write the pending changes as a new versioned migration."""

    async def go(config: MigrationConfig, registry: SchemaRegistry, executor: Executor) -> None:
        changes = await plan(executor, registry)
        path = artifacts.generate(changes, config, name=name)
        if path is None:
            typer.echo("No schema changes.")
            return
        for change in changes:
            typer.echo(f"  {change.describe()}")
        typer.echo(f"Wrote {path}")

    _run(go)


@app.command()
def migrate() -> None:
    """Apply every generated migration not yet recorded in the database."""

    async def go(config: MigrationConfig, registry: SchemaRegistry, executor: Executor) -> None:
        applied = await pipeline.migrate(artifacts.load_migrations(config.out_dir), executor)
        typer.echo(f"Applied {applied} migration(s).")

    _run(go)


@app.command()
def push() -> None:
    """Diff and apply in one step (development databases)."""

    async def go(config: MigrationConfig, registry: SchemaRegistry, executor: Executor) -> None:
        changes = await plan(executor, registry)
        for change in changes:
            typer.echo(f"  {change.describe()}")
        applied = await pipeline.apply(changes, executor)
        typer.echo(f"Applied {applied} change(s).")

    _run(go)


@app.command()
def check() -> None:
    """Exit non-zero when the database lags behind the declared schema."""

    async def go(config: MigrationConfig, registry: SchemaRegistry, executor: Executor) -> int:
        changes = await plan(executor, registry)
        for change in changes:
            typer.echo(f"  {change.describe()}")
        return len(changes)

    pending = _run(go)
    if pending:
        typer.echo(f"{pending} pending change(s).")
        raise typer.Exit(code=1)
    typer.echo("Schema is up to date.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()


# --- Module Notes -----------------------------------------------------------
# Exit codes: 0 on success, 1 on any data-layer or migration error.
