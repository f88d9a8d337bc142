"""
storefront_data.db.connection

Connection/session provider.

Responsibilities:
- Resolve an immutable `ConnectionDescriptor` from explicit `Settings`.
- Build a cheap, stateless executor for a descriptor.
- Bind an executor to the schema registry as a typed `Database` handle.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

import httpx
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from storefront_data.db.executors import EngineExecutor, Executor, HttpExecutor
from storefront_data.db.facade import Database
from storefront_data.db.schema import SchemaRegistry
from storefront_data.errors import ConfigurationError
from storefront_data.settings import Settings

_HTTP_SCHEMES = ("postgres", "postgresql")


class Driver(enum.StrEnum):
    # Serverless SQL-over-HTTP endpoint; one request per statement or batch.
    http = "http"
    # SQLAlchemy async engine without a pool (local development and tests).
    engine = "engine"


@dataclass(frozen=True, slots=True)
class ConnectionDescriptor:
    driver: Driver
    url: URL
    endpoint: str | None = None

    @property
    def host(self) -> str | None:
        return self.url.host

    @property
    def database(self) -> str | None:
        return self.url.database

    def __repr__(self) -> str:
        return (
            f"ConnectionDescriptor(driver={self.driver.value!r}, "
            f"url={self.url.render_as_string(hide_password=True)!r}, endpoint={self.endpoint!r})"
        )

    __str__ = __repr__


def resolve(settings: Settings) -> ConnectionDescriptor:
    raw = (settings.database_url or "").strip()
    if not raw:
        raise ConfigurationError("DATABASE_URL is not set; the data layer cannot serve any request")
    try:
        url = make_url(raw)
    except ArgumentError as exc:
        raise ConfigurationError("DATABASE_URL is not a valid database URL") from exc

    if url.get_backend_name() in _HTTP_SCHEMES and (not url.host or not url.database):
        raise ConfigurationError("DATABASE_URL must name both a host and a database")

    if url.drivername in _HTTP_SCHEMES:
        endpoint = settings.sql_http_endpoint or f"https://{url.host}/sql"
        # Normalise so the connection string sent upstream is always postgresql://.
        return ConnectionDescriptor(Driver.http, url.set(drivername="postgresql"), endpoint)

    if "+" not in url.drivername:
        raise ConfigurationError(
            f"unsupported DATABASE_URL scheme {url.drivername!r}; use postgresql:// for the "
            "HTTP driver or an async SQLAlchemy URL such as sqlite+aiosqlite://"
        )
    return ConnectionDescriptor(Driver.engine, url)


def create_executor(
    descriptor: ConnectionDescriptor,
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Executor:
    if descriptor.driver is Driver.http:
        if not descriptor.endpoint:
            raise ConfigurationError("the HTTP driver needs an SQL endpoint; set STOREFRONT_SQL_HTTP_ENDPOINT")
        return HttpExecutor(
            endpoint=descriptor.endpoint,
            connection_string=descriptor.url.render_as_string(hide_password=False),
            timeout=timeout,
            transport=transport,
        )
    return EngineExecutor(descriptor.url, timeout=timeout)


def open_database(
    descriptor: ConnectionDescriptor,
    registry: SchemaRegistry,
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Database:
    # Nothing here holds a socket; callers simply drop the value when done.
    return Database(create_executor(descriptor, timeout=timeout, transport=transport), registry)


# --- Module Notes -----------------------------------------------------------
# Descriptors are safe to share between concurrent requests or to re-resolve per request.
