"""
tests.conftest

Shared fixtures.

Responsibilities:
- Point the data layer at a throwaway sqlite file through the engine driver.
- Provide a migrated `Database` for the storefront catalog.
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from storefront_data.db.catalog import registry as catalog_registry
from storefront_data.db.connection import create_executor, resolve
from storefront_data.db.executors import Executor
from storefront_data.db.facade import Database
from storefront_data.migrations.diff import diff
from storefront_data.migrations.pipeline import apply
from storefront_data.settings import Settings


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}"


@pytest.fixture
def settings(sqlite_url: str) -> Settings:
    return Settings(env="test", database_url=sqlite_url, query_timeout_seconds=5)


@pytest.fixture
def executor(settings: Settings) -> Executor:
    return create_executor(resolve(settings), timeout=settings.query_timeout_seconds)


@pytest_asyncio.fixture
async def db(executor: Executor) -> Database:
    await apply(diff(None, catalog_registry), executor, name="initial")
    return Database(executor, catalog_registry)


def category_values(slug: str = "bats", **overrides) -> dict:
    values = {
        "slug": slug,
        "name": slug.title(),
        "description": f"All {slug}",
        "long_description": f"Everything you need in {slug}.",
        "image": f"/img/{slug}.jpg",
    }
    values.update(overrides)
    return values


def product_values(name: str = "Players Edition Bat", category: str = "bats", **overrides) -> dict:
    values = {
        "name": name,
        "company": "Gray-Nicolls",
        "category": category,
        "image_src": "/img/bat.jpg",
        "image_alt": name,
        "description": "English willow, grade 1.",
        "price_regular": "349.99",
    }
    values.update(overrides)
    return values
