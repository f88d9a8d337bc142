"""
storefront_data.api.routers.products

Product listing and detail endpoints.

Responsibilities:
- List products, optionally filtered by category slug.
- Shape rows into the storefront's card format (image, price, badge groups).
"""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from storefront_data.api.deps import product_repo
from storefront_data.db.catalog import Product
from storefront_data.db.repositories.products import ProductRepo

router = APIRouter(prefix="/v1/products", tags=["products"])


class ImageOut(BaseModel):
    src: str
    alt: str


class PriceOut(BaseModel):
    regular: Decimal
    sale: Decimal | None = None
    currency: str


class BadgeOut(BaseModel):
    text: str
    background_color: str | None = None


class ProductResponse(BaseModel):
    id: int
    name: str
    company: str
    category: str
    image: ImageOut
    image_hover: ImageOut | None = None
    description: str
    price: PriceOut
    badge: BadgeOut | None = None

    @classmethod
    def from_row(cls, row: Product) -> ProductResponse:
        hover = None
        if row.image_hover_src:
            hover = ImageOut(
                src=row.image_hover_src,
                alt=row.image_hover_alt or f"{row.name} - Alternate View",
            )
        badge = None
        if row.badge_text:
            badge = BadgeOut(text=row.badge_text, background_color=row.badge_background_color or None)
        return cls(
            id=row.id,
            name=row.name,
            company=row.company,
            category=row.category,
            image=ImageOut(src=row.image_src, alt=row.image_alt),
            image_hover=hover,
            description=row.description,
            price=PriceOut(regular=row.price_regular, sale=row.price_sale, currency=row.price_currency),
            badge=badge,
        )


@router.get("", response_model=list[ProductResponse])
async def list_products(
    category: str | None = Query(default=None, max_length=128),
    repo: ProductRepo = Depends(product_repo),
) -> list[ProductResponse]:
    return [ProductResponse.from_row(row) for row in await repo.list_by_category(category)]


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, repo: ProductRepo = Depends(product_repo)) -> ProductResponse:
    return ProductResponse.from_row(await repo.get(product_id))
