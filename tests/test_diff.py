from __future__ import annotations

from storefront_data.db.catalog import registry
from storefront_data.db.schema import Column, ColumnType, Entity, Reference, SchemaRegistry
from storefront_data.migrations.changes import (
    AddColumn,
    AddForeignKey,
    AddUnique,
    AlterColumn,
    CreateTable,
    DropColumn,
    DropForeignKey,
    DropTable,
)
from storefront_data.migrations.diff import diff
from storefront_data.migrations.pipeline import render


def _pk() -> Column:
    return Column("id", ColumnType.serial, primary_key=True)


def _kinds(changes) -> list[str]:
    return [change.describe() for change in changes]


def test_identical_schemas_produce_no_changes() -> None:
    assert diff(registry, registry) == []


def test_empty_database_creates_tables_in_dependency_order() -> None:
    changes = diff(None, registry)
    assert _kinds(changes) == [
        "create table categories",
        "create table products",
        "create table orders",
        "create table order_items",
    ]
    # Every target is created first, so each foreign key goes inline.
    assert not any(isinstance(c, AddForeignKey) for c in changes)


def test_referenced_table_is_created_first_regardless_of_declaration_order() -> None:
    children = Entity("children", (_pk(), Column("parent_id", ColumnType.integer, references=Reference("parents", "id"))))
    parents = Entity("parents", (_pk(),))
    changes = diff(None, SchemaRegistry([children, parents]))
    assert _kinds(changes) == ["create table parents", "create table children"]


def test_cycle_defers_the_open_foreign_key() -> None:
    a = Entity("a", (_pk(), Column("b_id", ColumnType.integer, nullable=True, references=Reference("b", "id"))))
    b = Entity("b", (_pk(), Column("a_id", ColumnType.integer, nullable=True, references=Reference("a", "id"))))
    changes = diff(None, SchemaRegistry([a, b]))
    assert _kinds(changes) == [
        "create table a",
        "create table b",
        "add foreign key a.b_id -> b.id",
    ]
    create_a = changes[0]
    assert isinstance(create_a, CreateTable)
    assert create_a.foreign_keys == ()


def test_self_reference_stays_inline() -> None:
    nodes = Entity("nodes", (_pk(), Column("parent_id", ColumnType.integer, nullable=True, references=Reference("nodes", "id"))))
    changes = diff(None, SchemaRegistry([nodes]))
    assert _kinds(changes) == ["create table nodes"]
    assert "REFERENCES nodes (id)" in render(changes)[0]


def test_new_table_referencing_existing_table_is_inline() -> None:
    parents = Entity("parents", (_pk(),))
    children = Entity("children", (_pk(), Column("parent_id", ColumnType.integer, references=Reference("parents", "id"))))
    changes = diff(SchemaRegistry([parents]), SchemaRegistry([parents, children]))
    assert _kinds(changes) == ["create table children"]


def test_reference_to_newly_unique_column_waits_for_the_constraint() -> None:
    live_parents = Entity("parents", (_pk(), Column("code", ColumnType.text)))
    parents = Entity("parents", (_pk(), Column("code", ColumnType.text, unique=True)))
    children = Entity("children", (_pk(), Column("code", ColumnType.text, references=Reference("parents", "code"))))

    changes = diff(SchemaRegistry([live_parents]), SchemaRegistry([parents, children]))
    assert _kinds(changes) == [
        "create table children",
        "add unique parents_code_key on parents.code",
        "add foreign key children.code -> parents.code",
    ]


def test_added_column_with_reference_adds_constraint_after_column() -> None:
    before = SchemaRegistry([Entity("parents", (_pk(),)), Entity("children", (_pk(),))])
    after = SchemaRegistry(
        [
            Entity("parents", (_pk(),)),
            Entity(
                "children",
                (_pk(), Column("parent_id", ColumnType.integer, nullable=True, references=Reference("parents", "id"))),
            ),
        ]
    )
    changes = diff(before, after)
    assert [type(c) for c in changes] == [AddColumn, AddForeignKey]


def test_type_and_nullability_changes_become_alters() -> None:
    before = SchemaRegistry([Entity("t", (_pk(), Column("n", ColumnType.integer, nullable=True)))])
    after = SchemaRegistry([Entity("t", (_pk(), Column("n", ColumnType.bigint)))])
    (change,) = diff(before, after)
    assert isinstance(change, AlterColumn)
    assert change.type_changed and change.nullable_changed
    sql = render([change])
    assert sql == ["ALTER TABLE t ALTER COLUMN n TYPE BIGINT", "ALTER TABLE t ALTER COLUMN n SET NOT NULL"]


def test_numeric_precision_change_is_a_type_change() -> None:
    before = SchemaRegistry([Entity("t", (_pk(), Column("p", ColumnType.numeric, precision=10, scale=2)))])
    after = SchemaRegistry([Entity("t", (_pk(), Column("p", ColumnType.numeric, precision=12, scale=2)))])
    (change,) = diff(before, after)
    assert isinstance(change, AlterColumn) and change.type_changed and not change.nullable_changed


def test_removed_reference_is_dropped_before_anything_else() -> None:
    parents = Entity("parents", (_pk(),))
    linked = Entity("children", (_pk(), Column("parent_id", ColumnType.integer, references=Reference("parents", "id"))))
    unlinked = Entity("children", (_pk(), Column("parent_id", ColumnType.integer), Column("note", ColumnType.text, nullable=True)))
    changes = diff(SchemaRegistry([parents, linked]), SchemaRegistry([parents, unlinked]))
    assert [type(c) for c in changes] == [DropForeignKey, AddColumn]
    assert render(changes[:1]) == ["ALTER TABLE children DROP CONSTRAINT children_parent_id_parents_id_fk"]


def test_dropped_tables_go_last_referencing_first() -> None:
    parents = Entity("parents", (_pk(),))
    children = Entity("children", (_pk(), Column("parent_id", ColumnType.integer, references=Reference("parents", "id"))))
    keep = Entity("keep", (_pk(), Column("gone", ColumnType.text, nullable=True)))
    before = SchemaRegistry([parents, children, keep])
    after = SchemaRegistry([Entity("keep", (_pk(),))])

    changes = diff(before, after)
    assert [type(c) for c in changes] == [DropForeignKey, DropColumn, DropTable, DropTable]
    assert _kinds(changes)[2:] == ["drop table children", "drop table parents"]


def test_catalog_renders_postgres_ddl() -> None:
    statements = render(diff(None, registry))
    products_sql = statements[1]
    assert products_sql.startswith("CREATE TABLE products")
    assert "id SERIAL NOT NULL" in products_sql
    assert "price_regular NUMERIC(10, 2) NOT NULL" in products_sql
    assert "price_currency TEXT DEFAULT 'USD' NOT NULL" in products_sql
    assert "created_at TIMESTAMP WITHOUT TIME ZONE DEFAULT now() NOT NULL" in products_sql
    assert (
        "CONSTRAINT products_category_categories_slug_fk FOREIGN KEY(category) REFERENCES categories (slug)"
        in products_sql
    )
    assert "ON DELETE CASCADE" in statements[3]
    assert "CONSTRAINT categories_slug_key UNIQUE (slug)" in statements[0]


def test_unique_added_to_existing_column() -> None:
    before = SchemaRegistry([Entity("t", (_pk(), Column("code", ColumnType.text)))])
    after = SchemaRegistry([Entity("t", (_pk(), Column("code", ColumnType.text, unique=True)))])
    (change,) = diff(before, after)
    assert isinstance(change, AddUnique)
    assert render([change]) == ["ALTER TABLE t ADD CONSTRAINT t_code_key UNIQUE (code)"]


def test_dropped_table_releases_its_references_before_target_columns_go() -> None:
    cats = Entity("cats", (_pk(), Column("slug", ColumnType.text, unique=True)))
    prods = Entity("prods", (_pk(), Column("cat", ColumnType.text, references=Reference("cats", "slug"))))
    before = SchemaRegistry([cats, prods])
    after = SchemaRegistry([Entity("cats", (_pk(),))])

    changes = diff(before, after)
    assert _kinds(changes) == [
        "drop foreign key prods_cat_cats_slug_fk on prods.cat",
        "drop column cats.slug",
        "drop table prods",
    ]


def test_dropped_column_releases_its_reference_first() -> None:
    parents = Entity("parents", (_pk(),))
    before = SchemaRegistry(
        [parents, Entity("children", (_pk(), Column("parent_id", ColumnType.integer, references=Reference("parents", "id"))))]
    )
    after = SchemaRegistry([Entity("children", (_pk(),))])

    changes = diff(before, after)
    assert [type(c) for c in changes] == [DropForeignKey, DropColumn, DropTable]
    assert _kinds(changes)[-1] == "drop table parents"


def test_live_constraint_names_are_used_for_drops() -> None:
    live = SchemaRegistry(
        [
            Entity("cats", (_pk(), Column("slug", ColumnType.text, unique=True, unique_name="cats_slug_unique"))),
            Entity(
                "prods",
                (_pk(), Column("cat", ColumnType.text, references=Reference("cats", "slug", name="prods_cat_fkey"))),
            ),
        ]
    )
    declared = SchemaRegistry(
        [
            Entity("cats", (_pk(), Column("slug", ColumnType.text))),
            Entity("prods", (_pk(), Column("cat", ColumnType.text))),
        ]
    )

    changes = diff(live, declared)
    assert render(changes) == [
        "ALTER TABLE prods DROP CONSTRAINT prods_cat_fkey",
        "ALTER TABLE cats DROP CONSTRAINT cats_slug_unique",
    ]
    # A live name that already matches the declaration is not a difference.
    assert diff(live, live) == []
