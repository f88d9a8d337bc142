"""
storefront_data.db.catalog

The storefront's declared entities.

Responsibilities:
- Declare categories and products (with typed row models for call sites).
- Declare orders and order items (row models derived by the registry).
- Build the default `registry` referenced by `MigrationConfig.schema_source`.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from storefront_data.db.schema import NOW, Column, ColumnType, Entity, Reference, SchemaRegistry


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    slug: str
    name: str
    description: str
    long_description: str
    image: str
    image_hover: str | None = None
    created_at: datetime
    updated_at: datetime


class Product(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    company: str
    category: str
    image_src: str
    image_alt: str
    image_hover_src: str | None = None
    image_hover_alt: str | None = None
    description: str
    price_regular: Decimal
    price_sale: Decimal | None = None
    price_currency: str
    badge_text: str | None = None
    badge_background_color: str | None = None
    created_at: datetime
    updated_at: datetime


def _timestamps() -> tuple[Column, Column]:
    return (
        Column("created_at", ColumnType.timestamp, default=NOW),
        Column("updated_at", ColumnType.timestamp, default=NOW),
    )


def _price(name: str, *, nullable: bool = False) -> Column:
    return Column(name, ColumnType.numeric, nullable=nullable, precision=10, scale=2)


categories: Entity[Category] = Entity(
    "categories",
    (
        Column("id", ColumnType.serial, primary_key=True),
        Column("slug", ColumnType.text, unique=True),
        Column("name", ColumnType.text),
        Column("description", ColumnType.text),
        Column("long_description", ColumnType.text),
        Column("image", ColumnType.text),
        Column("image_hover", ColumnType.text, nullable=True),
        *_timestamps(),
    ),
    row_model=Category,
)

products: Entity[Product] = Entity(
    "products",
    (
        Column("id", ColumnType.serial, primary_key=True),
        Column("name", ColumnType.text),
        Column("company", ColumnType.text),
        Column("category", ColumnType.text, references=Reference("categories", "slug")),
        Column("image_src", ColumnType.text),
        Column("image_alt", ColumnType.text),
        Column("image_hover_src", ColumnType.text, nullable=True),
        Column("image_hover_alt", ColumnType.text, nullable=True),
        Column("description", ColumnType.text),
        _price("price_regular"),
        _price("price_sale", nullable=True),
        Column("price_currency", ColumnType.text, default="USD"),
        Column("badge_text", ColumnType.text, nullable=True),
        Column("badge_background_color", ColumnType.text, nullable=True),
        *_timestamps(),
    ),
    row_model=Product,
)

orders: Entity = Entity(
    "orders",
    (
        Column("id", ColumnType.serial, primary_key=True),
        Column("order_number", ColumnType.text, unique=True),
        Column("user_id", ColumnType.text, nullable=True),
        Column("customer_name", ColumnType.text),
        Column("customer_email", ColumnType.text),
        Column("status", ColumnType.text, default="pending"),
        Column("payment_method", ColumnType.text, nullable=True),
        Column("payment_status", ColumnType.text, default="unpaid"),
        _price("total"),
        Column("deleted_at", ColumnType.timestamp, nullable=True),
        *_timestamps(),
    ),
)

order_items: Entity = Entity(
    "order_items",
    (
        Column("id", ColumnType.serial, primary_key=True),
        Column(
            "order_id",
            ColumnType.integer,
            references=Reference("orders", "id", on_delete="CASCADE"),
        ),
        Column("product_id", ColumnType.integer, references=Reference("products", "id")),
        Column("quantity", ColumnType.integer, default=1),
        _price("unit_price"),
    ),
)

registry = SchemaRegistry([categories, products, orders, order_items])


# --- Module Notes -----------------------------------------------------------
# Products reference categories by slug; renaming a slug touches products too.
