"""
storefront_data.db.schema

Schema Registry: validated, queryable description of entities.

Responsibilities:
- Declare entities as immutable column/relationship definitions.
- Validate declarations at construction (fail fast, before serving anything).
- Compile each entity into a SQLAlchemy `Table` on a shared `MetaData`, the
  single source of identifiers for both the query façade and the migration differ.
- Derive a pydantic row model and insert model per entity.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Generic, TypeVar

import sqlalchemy as sa
from pydantic import BaseModel, ConfigDict, create_model

from storefront_data.errors import SchemaValidationError

RowT = TypeVar("RowT", bound=BaseModel)


class ColumnType(enum.StrEnum):
    serial = "serial"
    integer = "integer"
    bigint = "bigint"
    text = "text"
    boolean = "boolean"
    numeric = "numeric"
    timestamp = "timestamp"

    @property
    def storage(self) -> str:
        # serial is integer storage plus a sequence default.
        return ColumnType.integer.value if self is ColumnType.serial else self.value


_PYTHON_TYPES: dict[ColumnType, type] = {
    ColumnType.serial: int,
    ColumnType.integer: int,
    ColumnType.bigint: int,
    ColumnType.text: str,
    ColumnType.boolean: bool,
    ColumnType.numeric: Decimal,
    ColumnType.timestamp: datetime,
}


class _Now:
    def __repr__(self) -> str:
        return "now()"


# Column default evaluated by the database at insert time.
NOW = _Now()


@dataclass(frozen=True, slots=True)
class Reference:
    entity: str
    column: str
    on_delete: str | None = None
    # Set when read from a live database, whose names may follow another convention.
    name: str | None = None


@dataclass(frozen=True, slots=True)
class Column:
    name: str
    type: ColumnType
    nullable: bool = False
    default: Any = None
    primary_key: bool = False
    unique: bool = False
    precision: int | None = None
    scale: int | None = None
    references: Reference | None = None
    unique_name: str | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not None or self.type is ColumnType.serial

    def same_storage(self, other: Column) -> bool:
        if self.type.storage != other.type.storage:
            return False
        if self.type is ColumnType.numeric:
            return (self.precision, self.scale) == (other.precision, other.scale)
        return True


@dataclass(frozen=True, slots=True)
class Relationship:
    entity: str
    column: str
    target_entity: str
    target_column: str
    on_delete: str | None = None
    name: str | None = None

    @property
    def constraint_name(self) -> str:
        return self.name or foreign_key_name(self.entity, self.column, self.target_entity, self.target_column)


@dataclass(frozen=True)
class Entity(Generic[RowT]):
    """
    One table. Pass `row_model` to get a statically typed handle (`Entity[Product]`);
    otherwise the registry derives the row model itself.
    """

    name: str
    columns: tuple[Column, ...]
    row_model: type[RowT] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", tuple(self.columns))

    def column(self, name: str) -> Column | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    @property
    def primary_key(self) -> tuple[Column, ...]:
        return tuple(c for c in self.columns if c.primary_key)

    @property
    def relationships(self) -> tuple[Relationship, ...]:
        return tuple(
            Relationship(
                self.name,
                c.name,
                c.references.entity,
                c.references.column,
                c.references.on_delete,
                c.references.name,
            )
            for c in self.columns
            if c.references is not None
        )


def unique_constraint_name(table: str, column: str) -> str:
    # Matches Postgres' own naming so reflected constraints line up with declared ones.
    return f"{table}_{column}_key"


def foreign_key_name(table: str, column: str, target_table: str, target_column: str) -> str:
    return f"{table}_{column}_{target_table}_{target_column}_fk"


class SchemaRegistry:
    def __init__(self, entities: Iterable[Entity[Any]]) -> None:
        self._entities: dict[str, Entity[Any]] = {}
        for entity in entities:
            if entity.name in self._entities:
                raise SchemaValidationError(f"entity {entity.name!r} is declared twice")
            self._entities[entity.name] = entity

        for entity in self._entities.values():
            self._validate_entity(entity)
        for entity in self._entities.values():
            for col in entity.columns:
                if col.references is not None:
                    self._validate_reference(entity.name, col, col.references)

        self.metadata = sa.MetaData()
        self._tables = {name: _build_table(e, self.metadata) for name, e in self._entities.items()}
        self._row_models = {name: _row_model(e) for name, e in self._entities.items()}
        self._insert_models = {name: _insert_model(e) for name, e in self._entities.items()}
        self._update_models = {name: _update_model(e) for name, e in self._entities.items()}

    # --- lookups ------------------------------------------------------------

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._entities)

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def entity(self, name: str) -> Entity[Any]:
        try:
            return self._entities[name]
        except KeyError:
            raise KeyError(f"unknown entity {name!r}") from None

    def columns(self, name: str) -> Mapping[str, Column]:
        return {c.name: c for c in self.entity(name).columns}

    def relationships(self, name: str) -> tuple[Relationship, ...]:
        return self.entity(name).relationships

    def table(self, name: str) -> sa.Table:
        self.entity(name)
        return self._tables[name]

    def row_model(self, name: str) -> type[BaseModel]:
        self.entity(name)
        return self._row_models[name]

    def insert_model(self, name: str) -> type[BaseModel]:
        self.entity(name)
        return self._insert_models[name]

    def update_model(self, name: str) -> type[BaseModel]:
        self.entity(name)
        return self._update_models[name]

    def is_unique_key(self, name: str, column_names: Iterable[str]) -> bool:
        """True when any of `column_names` alone identifies at most one row."""
        entity = self.entity(name)
        pk = entity.primary_key
        for col_name in column_names:
            col = entity.column(col_name)
            if col is None:
                continue
            if col.unique or (col.primary_key and len(pk) == 1):
                return True
        return False

    # --- construction helpers -----------------------------------------------

    @classmethod
    def from_metadata(cls, metadata: sa.MetaData, *, exclude: Iterable[str] = ()) -> SchemaRegistry:
        """Rebuild a registry from reflected SQLAlchemy tables (live database state)."""
        skipped = set(exclude)
        entities = [
            _entity_from_table(table)
            for name, table in sorted(metadata.tables.items())
            if name not in skipped
        ]
        return cls(entities)

    def _validate_entity(self, entity: Entity[Any]) -> None:
        if not entity.columns:
            raise SchemaValidationError(f"entity {entity.name!r} declares no columns")
        seen: set[str] = set()
        for col in entity.columns:
            if col.name in seen:
                raise SchemaValidationError(f"column {entity.name}.{col.name} is declared twice")
            seen.add(col.name)
            if col.primary_key and col.nullable:
                raise SchemaValidationError(f"primary key {entity.name}.{col.name} cannot be nullable")
            if col.type is not ColumnType.numeric and (col.precision is not None or col.scale is not None):
                raise SchemaValidationError(
                    f"{entity.name}.{col.name}: precision/scale only apply to numeric columns"
                )
        if not entity.primary_key:
            raise SchemaValidationError(f"entity {entity.name!r} has no primary key")
        if entity.row_model is not None:
            fields = set(entity.row_model.model_fields)
            if fields != seen:
                raise SchemaValidationError(
                    f"row model {entity.row_model.__name__} does not match {entity.name!r}: "
                    f"missing {sorted(seen - fields)}, unexpected {sorted(fields - seen)}"
                )

    def _validate_reference(self, entity_name: str, source_col: Column, ref: Reference) -> None:
        source = f"{entity_name}.{source_col.name}"
        target = self._entities.get(ref.entity)
        if target is None:
            raise SchemaValidationError(f"{source} references unknown entity {ref.entity!r}")
        target_col = target.column(ref.column)
        if target_col is None:
            raise SchemaValidationError(f"{source} references unknown column {ref.entity}.{ref.column}")
        if not source_col.same_storage(target_col):
            raise SchemaValidationError(
                f"{source} ({source_col.type}) is not type-compatible with "
                f"{ref.entity}.{ref.column} ({target_col.type})"
            )
        if not (target_col.unique or (target_col.primary_key and len(target.primary_key) == 1)):
            raise SchemaValidationError(
                f"{source} must reference a primary key or unique column, not {ref.entity}.{ref.column}"
            )


def _sa_type(col: Column) -> sa.types.TypeEngine[Any]:
    match col.type:
        case ColumnType.serial | ColumnType.integer:
            return sa.Integer()
        case ColumnType.bigint:
            return sa.BigInteger()
        case ColumnType.text:
            return sa.Text()
        case ColumnType.boolean:
            return sa.Boolean()
        case ColumnType.numeric:
            return sa.Numeric(precision=col.precision, scale=col.scale)
        case ColumnType.timestamp:
            return sa.DateTime()
    raise SchemaValidationError(f"unsupported column type {col.type!r}")


def _server_default(value: Any) -> Any:
    if value is None:
        return None
    if value is NOW:
        return sa.func.now()
    if isinstance(value, bool):
        return sa.text("true" if value else "false")
    if isinstance(value, (int, float, Decimal)):
        return sa.text(str(value))
    if isinstance(value, str):
        return value
    raise SchemaValidationError(f"unsupported column default {value!r}")


def _build_table(entity: Entity[Any], metadata: sa.MetaData) -> sa.Table:
    items: list[sa.SchemaItem] = []
    for col in entity.columns:
        args: list[Any] = []
        if col.references is not None:
            ref = col.references
            args.append(
                sa.ForeignKey(
                    f"{ref.entity}.{ref.column}",
                    name=ref.name or foreign_key_name(entity.name, col.name, ref.entity, ref.column),
                    ondelete=ref.on_delete,
                )
            )
        items.append(
            sa.Column(
                col.name,
                _sa_type(col),
                *args,
                primary_key=col.primary_key,
                nullable=col.nullable,
                server_default=_server_default(col.default),
                autoincrement=col.type is ColumnType.serial,
            )
        )
        if col.unique:
            items.append(
                sa.UniqueConstraint(col.name, name=col.unique_name or unique_constraint_name(entity.name, col.name))
            )
    return sa.Table(entity.name, metadata, *items)


def _model_name(entity_name: str, suffix: str = "") -> str:
    return "".join(part.capitalize() for part in entity_name.split("_")) + suffix


def _row_model(entity: Entity[Any]) -> type[BaseModel]:
    if entity.row_model is not None:
        return entity.row_model
    fields: dict[str, Any] = {}
    for col in entity.columns:
        py = _PYTHON_TYPES[col.type]
        fields[col.name] = (py | None, None) if col.nullable else (py, ...)
    return create_model(
        _model_name(entity.name, "Row"),
        __config__=ConfigDict(frozen=True, extra="ignore"),
        **fields,
    )


def _insert_model(entity: Entity[Any]) -> type[BaseModel]:
    fields: dict[str, Any] = {}
    for col in entity.columns:
        py = _PYTHON_TYPES[col.type]
        if col.nullable:
            fields[col.name] = (py | None, None)
        elif col.has_default:
            fields[col.name] = (py, None)
        else:
            fields[col.name] = (py, ...)
    return create_model(
        _model_name(entity.name, "Insert"),
        __config__=ConfigDict(extra="forbid"),
        **fields,
    )


def _update_model(entity: Entity[Any]) -> type[BaseModel]:
    fields: dict[str, Any] = {}
    for col in entity.columns:
        fields[col.name] = (_PYTHON_TYPES[col.type] | None, None)
    return create_model(
        _model_name(entity.name, "Update"),
        __config__=ConfigDict(extra="forbid"),
        **fields,
    )


def _column_type_from_sa(table: sa.Table, column: sa.Column[Any]) -> tuple[ColumnType, int | None, int | None]:
    t = column.type
    if isinstance(t, sa.BigInteger):
        return ColumnType.bigint, None, None
    if isinstance(t, sa.Integer):
        single_pk = column.primary_key and len(table.primary_key.columns) == 1
        return (ColumnType.serial if single_pk else ColumnType.integer), None, None
    if isinstance(t, sa.Boolean):
        return ColumnType.boolean, None, None
    if isinstance(t, sa.Numeric) and not isinstance(t, sa.Float):
        return ColumnType.numeric, t.precision, t.scale
    if isinstance(t, sa.DateTime):
        return ColumnType.timestamp, None, None
    if isinstance(t, sa.String):
        return ColumnType.text, None, None
    raise SchemaValidationError(f"{table.name}.{column.name} has unsupported type {t!r}")


def _entity_from_table(table: sa.Table) -> Entity[Any]:
    unique_names = {
        next(iter(c.columns)).name: c.name
        for c in table.constraints
        if isinstance(c, sa.UniqueConstraint) and len(c.columns) == 1
    }
    columns: list[Column] = []
    for column in table.columns:
        col_type, precision, scale = _column_type_from_sa(table, column)
        reference = None
        for fk in column.foreign_keys:
            target_table, _, target_column = fk.target_fullname.rpartition(".")
            reference = Reference(
                target_table.rpartition(".")[2],
                target_column,
                fk.ondelete,
                name=fk.constraint.name if fk.constraint is not None else None,
            )
        columns.append(
            Column(
                column.name,
                col_type,
                nullable=bool(column.nullable) and not column.primary_key,
                primary_key=column.primary_key,
                unique=column.name in unique_names,
                precision=precision,
                scale=scale,
                references=reference,
                unique_name=unique_names.get(column.name) or None,
            )
        )
    return Entity(table.name, tuple(columns))


# --- Module Notes -----------------------------------------------------------
# The registry never changes after construction; share one instance across requests.
