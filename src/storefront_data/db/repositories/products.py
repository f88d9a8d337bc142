"""
storefront_data.db.repositories.products

Repository for `products`.

Responsibilities:
- List products (optionally per category) and fetch one by id.
- Create products and adjust sale prices for the admin boundary.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from storefront_data.db.catalog import Product, products
from storefront_data.db.facade import Database
from storefront_data.errors import NotFound


def _utcnow() -> datetime:
    # Columns are TIMESTAMP WITHOUT TIME ZONE; store naive UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ProductRepo:
    def __init__(self, db: Database) -> None:
        self._db = db

    async def list_by_category(self, category: str | None = None) -> list[Product]:
        filter = {"category": category} if category else None
        return await self._db.find(products, filter, order_by="created_at", descending=True)

    async def get(self, product_id: int) -> Product:
        return await self._db.get(products, {"id": product_id})

    async def create(self, **values: Any) -> Product:
        return await self._db.insert(products, values)

    async def set_sale_price(self, product_id: int, price: Decimal | None) -> None:
        updated = await self._db.update(
            products, {"id": product_id}, {"price_sale": price, "updated_at": _utcnow()}
        )
        if updated == 0:
            raise NotFound("products", {"id": product_id})

    async def delete(self, product_id: int) -> bool:
        return await self._db.delete(products, {"id": product_id}) > 0


# --- Module Notes -----------------------------------------------------------
# Sale prices are optional; absence means "not on sale".
