"""
storefront_data.db.repositories.categories

Category repository.

Responsibilities:
- Category reads in display order and slug lookups.
- Insert categories with optional fields normalised to NULL.
"""

from __future__ import annotations

from typing import Any

from storefront_data.db.catalog import Category, categories
from storefront_data.db.facade import Database


class CategoryRepo:
    def __init__(self, db: Database) -> None:
        self._db = db

    async def list_all(self) -> list[Category]:
        # Newest first, matching the storefront's category grid.
        return await self._db.find(categories, order_by="created_at", descending=True)

    async def get_by_slug(self, slug: str) -> Category:
        return await self._db.get(categories, {"slug": slug})

    async def create(
        self,
        *,
        slug: str,
        name: str,
        description: str,
        long_description: str,
        image: str,
        image_hover: str | None = None,
    ) -> Category:
        values: dict[str, Any] = {
            "slug": slug,
            "name": name,
            "description": description,
            "long_description": long_description,
            "image": image,
            "image_hover": image_hover or None,
        }
        return await self._db.insert(categories, values)


# --- Module Notes -----------------------------------------------------------
# Slug is the public key; numeric ids never leave the data layer.
