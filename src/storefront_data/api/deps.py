"""
storefront_data.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide the request-scoped `Database` handle.
- Encapsulate app.state access patterns (descriptor, registry, transport).
"""

from __future__ import annotations

from fastapi import Depends, Request

from storefront_data.db.connection import open_database
from storefront_data.db.facade import Database
from storefront_data.db.repositories.categories import CategoryRepo
from storefront_data.db.repositories.products import ProductRepo


def database(request: Request) -> Database:
    # Resolved once at startup (see `api.app.create_app`); opening is per request and cheap.
    state = request.app.state
    return open_database(
        state.descriptor,
        state.registry,
        timeout=state.settings.query_timeout_seconds,
        transport=state.transport,
    )


def category_repo(db: Database = Depends(database)) -> CategoryRepo:
    return CategoryRepo(db)


def product_repo(db: Database = Depends(database)) -> ProductRepo:
    return ProductRepo(db)


# --- Module Notes -----------------------------------------------------------
# One Database per request; there is no pool to share.
