"""
storefront_data.api.routers.categories

Category read endpoints.

Responsibilities:
- List categories for the storefront grid.
- Resolve a single category by its slug.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from storefront_data.api.deps import category_repo
from storefront_data.db.catalog import Category
from storefront_data.db.repositories.categories import CategoryRepo

router = APIRouter(prefix="/v1/categories", tags=["categories"])


class CategoryResponse(BaseModel):
    slug: str
    name: str
    description: str
    long_description: str
    image: str
    image_hover: str | None = None

    @classmethod
    def from_row(cls, row: Category) -> CategoryResponse:
        return cls(
            slug=row.slug,
            name=row.name,
            description=row.description,
            long_description=row.long_description,
            image=row.image,
            image_hover=row.image_hover or None,
        )


@router.get("", response_model=list[CategoryResponse])
async def list_categories(repo: CategoryRepo = Depends(category_repo)) -> list[CategoryResponse]:
    return [CategoryResponse.from_row(row) for row in await repo.list_all()]


@router.get("/{slug}", response_model=CategoryResponse)
async def get_category(slug: str, repo: CategoryRepo = Depends(category_repo)) -> CategoryResponse:
    # NotFound is mapped to 404 by the app-level handler.
    return CategoryResponse.from_row(await repo.get_by_slug(slug))


# --- Module Notes -----------------------------------------------------------
# Response models drop timestamps; the grid never shows them.
