"""
storefront_data.migrations.diff

Structural diff between the live schema and the declared schema.

Ordering policy (each group keeps declaration order internally):

1. drop foreign keys that are no longer declared, including those owned by
   dropped columns and dropped tables
2. create tables, referenced tables first
3. add columns
4. alter column type/nullability
5. add unique constraints
6. add foreign keys that could not be emitted inline
7. drop unique constraints
8. drop columns
9. drop tables, referencing tables first

A foreign key is emitted inline with CREATE TABLE only when its target already
exists with the referenced column keyed; everything else waits for group 6, after
the columns and unique constraints it depends on are in place.
"""

from __future__ import annotations

import sqlalchemy as sa

from storefront_data.db.schema import (
    Column,
    Entity,
    Relationship,
    SchemaRegistry,
    unique_constraint_name,
)
from storefront_data.migrations.changes import (
    AddColumn,
    AddForeignKey,
    AddUnique,
    AlterColumn,
    Change,
    CreateTable,
    DropColumn,
    DropForeignKey,
    DropTable,
    DropUnique,
)


def diff(current: SchemaRegistry | None, declared: SchemaRegistry) -> list[Change]:
    live_schema = current if current is not None else SchemaRegistry([])
    existing = set(live_schema.names)

    drop_fks: list[Change] = []
    creates: list[Change] = []
    add_columns: list[Change] = []
    alters: list[Change] = []
    add_uniques: list[Change] = []
    add_fks: list[Change] = []
    drop_uniques: list[Change] = []
    drop_columns: list[Change] = []

    new_tables = [name for name in declared.names if name not in existing]
    created, deferred = _creation_order(declared, live_schema, new_tables)
    for name in created:
        table = declared.table(name)
        inline = tuple(
            fk for fk in table.foreign_key_constraints if fk.name not in {r.constraint_name for r in deferred}
        )
        creates.append(CreateTable(name, table, inline))
    add_fks.extend(_add_fk(declared, rel) for rel in deferred)

    for name in declared.names:
        if name not in existing:
            continue
        table = declared.table(name)
        live = live_schema.entity(name)
        wanted = declared.entity(name)

        for col in wanted.columns:
            live_col = live.column(col.name)
            if live_col is None:
                add_columns.append(AddColumn(name, col.name, table.c[col.name]))
                if col.unique:
                    add_uniques.append(_add_unique(table, name, col))
                if col.references is not None:
                    add_fks.append(_add_fk(declared, _relationship(wanted, col)))
                continue

            type_changed = not col.same_storage(live_col)
            nullable_changed = col.nullable != live_col.nullable and not col.primary_key
            if type_changed or nullable_changed:
                alters.append(AlterColumn(name, col.name, type_changed, nullable_changed, table.c[col.name]))

            if col.unique and not live_col.unique:
                add_uniques.append(_add_unique(table, name, col))
            elif live_col.unique and not col.unique:
                drop_uniques.append(
                    DropUnique(name, col.name, live_col.unique_name or unique_constraint_name(name, col.name))
                )

            if not _same_target(col, live_col):
                if live_col.references is not None:
                    drop_fks.append(_drop_fk(live, live_col))
                if col.references is not None:
                    add_fks.append(_add_fk(declared, _relationship(wanted, col)))

        for live_col in live.columns:
            if wanted.column(live_col.name) is None:
                if live_col.references is not None:
                    drop_fks.append(_drop_fk(live, live_col))
                drop_columns.append(DropColumn(name, live_col.name))

    gone = [name for name in live_schema.names if name not in declared]
    # Foreign keys of dropped tables go first, so the columns and unique
    # constraints they point at can be dropped before the tables themselves.
    for name in gone:
        live = live_schema.entity(name)
        drop_fks.extend(_drop_fk(live, col) for col in live.columns if col.references is not None)
    drop_tables: list[Change] = [DropTable(name) for name in reversed(_dependency_order(live_schema, gone))]

    return [
        *drop_fks,
        *creates,
        *add_columns,
        *alters,
        *add_uniques,
        *add_fks,
        *drop_uniques,
        *drop_columns,
        *drop_tables,
    ]


def _same_target(col: Column, live_col: Column) -> bool:
    # ON DELETE spelling differs between declarations and reflection; targets decide.
    a, b = col.references, live_col.references
    if a is None or b is None:
        return a is b
    return (a.entity, a.column) == (b.entity, b.column)


def _relationship(entity: Entity, col: Column) -> Relationship:
    for rel in entity.relationships:
        if rel.column == col.name:
            return rel
    raise KeyError(f"{entity.name}.{col.name} has no relationship")


def _drop_fk(live: Entity, col: Column) -> DropForeignKey:
    return DropForeignKey(live.name, col.name, _relationship(live, col).constraint_name)


def _add_unique(table: sa.Table, table_name: str, col: Column) -> AddUnique:
    wanted = col.unique_name or unique_constraint_name(table_name, col.name)
    for constraint in table.constraints:
        if isinstance(constraint, sa.UniqueConstraint) and constraint.name == wanted:
            return AddUnique(table_name, col.name, constraint)
    raise KeyError(wanted)


def _add_fk(declared: SchemaRegistry, rel: Relationship) -> AddForeignKey:
    wanted = rel.constraint_name
    for fk in declared.table(rel.entity).foreign_key_constraints:
        if fk.name == wanted:
            return AddForeignKey(rel.entity, rel.column, rel.target_entity, rel.target_column, fk)
    raise KeyError(wanted)


def _target_ready(live_schema: SchemaRegistry, rel: Relationship) -> bool:
    """The target column already exists in the live schema and is usable as a key."""
    if rel.target_entity not in live_schema:
        return False
    live = live_schema.entity(rel.target_entity)
    col = live.column(rel.target_column)
    if col is None:
        return False
    return col.unique or (col.primary_key and len(live.primary_key) == 1)


def _creation_order(
    declared: SchemaRegistry, live_schema: SchemaRegistry, new_tables: list[str]
) -> tuple[list[str], list[Relationship]]:
    """
    Topologically order new tables (ties by declaration order). Returns the order
    and the relationships that cannot be emitted inline.
    """
    pending = set(new_tables)
    order: list[str] = []
    deferred: list[Relationship] = []
    remaining = list(new_tables)

    while remaining:
        chosen = None
        for name in remaining:
            deps = {
                rel.target_entity
                for rel in declared.relationships(name)
                if rel.target_entity in pending and rel.target_entity != name
            }
            if deps <= set(order):
                chosen = name
                break
        if chosen is None:
            # Cycle between new tables: take the earliest declared, defer its open edges.
            chosen = remaining[0]
        remaining.remove(chosen)

        for rel in declared.relationships(chosen):
            if rel.target_entity == chosen or rel.target_entity in order:
                continue
            if rel.target_entity in pending or not _target_ready(live_schema, rel):
                deferred.append(rel)
        order.append(chosen)

    return order, deferred


def _dependency_order(registry: SchemaRegistry, names: list[str]) -> list[str]:
    # Referenced tables first; dropping in reverse removes referencing tables first.
    selected = set(names)
    order: list[str] = []
    remaining = list(names)
    while remaining:
        for name in remaining:
            deps = {
                rel.target_entity
                for rel in registry.relationships(name)
                if rel.target_entity in selected and rel.target_entity != name
            }
            if deps <= set(order):
                break
        else:
            name = remaining[0]
        remaining.remove(name)
        order.append(name)
    return order


# --- Module Notes -----------------------------------------------------------
# Pure function of two registries. It never talks to a database.
