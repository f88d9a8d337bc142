"""
storefront_data.api.app

FastAPI app factory for the catalog read API.

Responsibilities:
- Build the FastAPI application and register routers/middleware.
- Resolve the connection descriptor at startup (fatal if configuration is missing).
- Map data-layer errors that escape routers onto HTTP responses.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront_data import __version__
from storefront_data.api.routers.categories import router as categories_router
from storefront_data.api.routers.health import router as health_router
from storefront_data.api.routers.products import router as products_router
from storefront_data.db.catalog import registry as catalog_registry
from storefront_data.db.connection import resolve
from storefront_data.db.schema import SchemaRegistry
from storefront_data.errors import DataLayerError, InvalidQuery, NotFound, TransportError
from storefront_data.observability.logging import configure_logging, get_logger
from storefront_data.observability.middleware import RequestContextMiddleware
from storefront_data.settings import Settings

log = get_logger(__name__)


def create_app(
    *,
    settings: Settings,
    registry: SchemaRegistry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ConfigurationError propagates: the service must not start without a database.
        app.state.descriptor = resolve(settings)
        log.info("startup", env=settings.env, database=repr(app.state.descriptor))
        yield
        # Executors hold no sockets, so there is nothing to dispose.
        log.info("shutdown")

    app = FastAPI(
        title="Storefront catalog API",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry or catalog_registry
    app.state.transport = transport

    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(DataLayerError, _data_layer_error)
    app.include_router(health_router, tags=["health"])
    app.include_router(categories_router)
    app.include_router(products_router)

    return app


async def _data_layer_error(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, NotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})
    if isinstance(exc, InvalidQuery):
        return JSONResponse(status_code=400, content={"detail": str(exc)})
    if isinstance(exc, TransportError):
        log.warning("database.unavailable", error=str(exc))
        return JSONResponse(status_code=503, content={"detail": "database unavailable"})
    log.error("database.error", error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(status_code=500, content={"detail": "internal server error"})


# --- Module Notes -----------------------------------------------------------
# Composition lives here; queries live in repositories, rendering in routers.
