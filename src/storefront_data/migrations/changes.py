"""
storefront_data.migrations.changes

Structural change kinds produced by the differ.

Each change knows how to describe itself for operators and which DDL elements
realise it. DDL comes from SQLAlchemy (`CreateTable`, `AddConstraint`, ...) and
Alembic's ALTER elements, so it compiles for whichever dialect runs it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import sqlalchemy as sa
from alembic.ddl.base import AddColumn as AlterAddColumn
from alembic.ddl.base import ColumnNullable, ColumnType
from alembic.ddl.base import DropColumn as AlterDropColumn
from sqlalchemy.schema import AddConstraint, DropConstraint, ExecutableDDLElement
from sqlalchemy.schema import CreateTable as CreateTableDDL
from sqlalchemy.schema import DropTable as DropTableDDL


class Change(Protocol):
    def describe(self) -> str: ...

    def ddl(self) -> list[ExecutableDDLElement]: ...


@dataclass(frozen=True)
class CreateTable:
    table_name: str
    table: sa.Table = field(compare=False, repr=False)
    # Only these FKs are emitted inline; the rest arrive later as AddForeignKey.
    foreign_keys: tuple[sa.ForeignKeyConstraint, ...] = field(default=(), compare=False, repr=False)

    def describe(self) -> str:
        return f"create table {self.table_name}"

    def ddl(self) -> list[ExecutableDDLElement]:
        return [CreateTableDDL(self.table, include_foreign_key_constraints=list(self.foreign_keys))]


@dataclass(frozen=True)
class AddColumn:
    table_name: str
    column_name: str
    column: sa.Column[Any] = field(compare=False, repr=False)

    def describe(self) -> str:
        return f"add column {self.table_name}.{self.column_name}"

    def ddl(self) -> list[ExecutableDDLElement]:
        return [AlterAddColumn(self.table_name, self.column)]


@dataclass(frozen=True)
class AlterColumn:
    table_name: str
    column_name: str
    type_changed: bool
    nullable_changed: bool
    column: sa.Column[Any] = field(compare=False, repr=False)

    def describe(self) -> str:
        parts = []
        if self.type_changed:
            parts.append(f"type -> {self.column.type}")
        if self.nullable_changed:
            parts.append("drop not null" if self.column.nullable else "set not null")
        return f"alter column {self.table_name}.{self.column_name} ({', '.join(parts)})"

    def ddl(self) -> list[ExecutableDDLElement]:
        elements: list[ExecutableDDLElement] = []
        if self.type_changed:
            elements.append(ColumnType(self.table_name, self.column_name, self.column.type))
        if self.nullable_changed:
            elements.append(ColumnNullable(self.table_name, self.column_name, bool(self.column.nullable)))
        return elements


@dataclass(frozen=True)
class AddUnique:
    table_name: str
    column_name: str
    constraint: sa.UniqueConstraint = field(compare=False, repr=False)

    def describe(self) -> str:
        return f"add unique {self.constraint.name} on {self.table_name}.{self.column_name}"

    def ddl(self) -> list[ExecutableDDLElement]:
        return [AddConstraint(self.constraint)]


@dataclass(frozen=True)
class DropUnique:
    table_name: str
    column_name: str
    constraint_name: str

    def describe(self) -> str:
        return f"drop unique {self.constraint_name} on {self.table_name}.{self.column_name}"

    def ddl(self) -> list[ExecutableDDLElement]:
        constraint = sa.UniqueConstraint(self.column_name, name=self.constraint_name)
        sa.Table(self.table_name, sa.MetaData(), sa.Column(self.column_name), constraint)
        return [DropConstraint(constraint)]


@dataclass(frozen=True)
class AddForeignKey:
    table_name: str
    column_name: str
    target_table: str
    target_column: str
    constraint: sa.ForeignKeyConstraint = field(compare=False, repr=False)

    def describe(self) -> str:
        return (
            f"add foreign key {self.table_name}.{self.column_name} -> "
            f"{self.target_table}.{self.target_column}"
        )

    def ddl(self) -> list[ExecutableDDLElement]:
        return [AddConstraint(self.constraint)]


@dataclass(frozen=True)
class DropForeignKey:
    table_name: str
    column_name: str
    constraint_name: str

    def describe(self) -> str:
        return f"drop foreign key {self.constraint_name} on {self.table_name}.{self.column_name}"

    def ddl(self) -> list[ExecutableDDLElement]:
        constraint = sa.ForeignKeyConstraint([self.column_name], ["_.id"], name=self.constraint_name)
        sa.Table(self.table_name, sa.MetaData(), sa.Column(self.column_name), constraint)
        return [DropConstraint(constraint)]


@dataclass(frozen=True)
class DropColumn:
    table_name: str
    column_name: str

    def describe(self) -> str:
        return f"drop column {self.table_name}.{self.column_name}"

    def ddl(self) -> list[ExecutableDDLElement]:
        return [AlterDropColumn(self.table_name, sa.Column(self.column_name))]


@dataclass(frozen=True)
class DropTable:
    table_name: str

    def describe(self) -> str:
        return f"drop table {self.table_name}"

    def ddl(self) -> list[ExecutableDDLElement]:
        return [DropTableDDL(sa.Table(self.table_name, sa.MetaData()))]


# --- Module Notes -----------------------------------------------------------
# Drops name their constraint explicitly; the live name wins over the convention.
