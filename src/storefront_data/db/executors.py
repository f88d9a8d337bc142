"""
storefront_data.db.executors

Query executors: the only code that talks to the database.

Responsibilities:
- `HttpExecutor`: compile SQLAlchemy statements for Postgres and dispatch each one
  (or one batch) as an independent HTTPS request to a serverless SQL endpoint.
- `EngineExecutor`: run the same statements through an async SQLAlchemy engine
  with `NullPool`, so no connection outlives a call.
- `RetryingExecutor`: opt-in retry wrapper for transport failures.
- Translate driver errors into the `storefront_data.errors` taxonomy.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time
from decimal import Decimal
from typing import Any, Protocol, TypeVar

import httpx
import sqlalchemy as sa
from sqlalchemy import exc as sa_exc
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from sqlalchemy.sql.base import Executable

from storefront_data.errors import (
    ConstraintViolation,
    DatabaseError,
    DataLayerError,
    TransportError,
)
from storefront_data.observability.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

Statement = Executable | str

# Statements sent over HTTP are compiled once here; `$1`-style binds as Postgres expects.
_PG_DIALECT = postgresql.dialect(paramstyle="numeric_dollar")


@dataclass(frozen=True, slots=True)
class StatementResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0


class Executor(Protocol):
    async def execute(self, statement: Statement) -> StatementResult: ...

    async def transaction(self, statements: Sequence[Statement]) -> list[StatementResult]: ...


def _as_executable(statement: Statement) -> Executable:
    return sa.text(statement) if isinstance(statement, str) else statement


def _kind(statement: Statement) -> str:
    return "text" if isinstance(statement, str) else type(statement).__name__.lower()


def compile_postgres(statement: Statement) -> tuple[str, list[Any]]:
    """Render a statement as Postgres SQL text plus positional parameters."""
    compiled = _as_executable(statement).compile(
        dialect=_PG_DIALECT, compile_kwargs={"render_postcompile": True}
    )
    positions = getattr(compiled, "positiontup", None)
    if not positions:
        return str(compiled), []
    params = compiled.params
    return str(compiled), [_encode_param(params[name]) for name in positions]


def _encode_param(value: Any) -> Any:
    # The endpoint takes text-format parameters, like the wire protocol does.
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


class HttpExecutor:
    """
    One `httpx.AsyncClient` per call: there is no socket to hold between queries,
    so the executor itself is just configuration.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        connection_string: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._connection_string = connection_string
        self._timeout = timeout
        self._transport = transport

    def _headers(self, *, batch: bool) -> dict[str, str]:
        headers = {
            "Neon-Connection-String": self._connection_string,
            "Neon-Raw-Text-Output": "true",
            "Neon-Array-Mode": "false",
        }
        if batch:
            headers.update(
                {
                    "Neon-Batch-Isolation-Level": "ReadCommitted",
                    "Neon-Batch-Read-Only": "false",
                    "Neon-Batch-Deferrable": "false",
                }
            )
        return headers

    async def execute(self, statement: Statement) -> StatementResult:
        sql, params = compile_postgres(statement)
        payload = await self._post({"query": sql, "params": params}, batch=False, kind=_kind(statement))
        return _http_result(payload)

    async def transaction(self, statements: Sequence[Statement]) -> list[StatementResult]:
        if not statements:
            return []
        queries = []
        for statement in statements:
            sql, params = compile_postgres(statement)
            queries.append({"query": sql, "params": params})
        payload = await self._post({"queries": queries}, batch=True, kind="batch")
        return [_http_result(item) for item in payload.get("results", [])]

    async def _post(self, body: dict[str, Any], *, batch: bool, kind: str) -> dict[str, Any]:
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.post(self._endpoint, headers=self._headers(batch=batch), json=body)
        except httpx.TimeoutException as exc:
            log.error("db.timeout", driver="http", statement=kind, timeout_s=self._timeout)
            raise TransportError(f"database request timed out after {self._timeout}s") from exc
        except httpx.TransportError as exc:
            log.error("db.transport_failed", driver="http", statement=kind, error=str(exc))
            raise TransportError(f"database endpoint unreachable: {exc}") from exc

        log.debug(
            "db.query",
            driver="http",
            statement=kind,
            status=response.status_code,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        if response.is_success:
            return response.json()
        raise _http_error(response)


def _http_result(payload: dict[str, Any]) -> StatementResult:
    rows = payload.get("rows") or []
    rowcount = payload.get("rowCount")
    return StatementResult(rows=list(rows), rowcount=int(rowcount) if rowcount is not None else len(rows))


def _http_error(response: httpx.Response) -> DataLayerError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("message") or response.text or response.reason_phrase
    sqlstate = body.get("code")
    if isinstance(sqlstate, str) and sqlstate.startswith("23"):
        return ConstraintViolation(message, sqlstate=sqlstate)
    if sqlstate:
        return DatabaseError(message, sqlstate=sqlstate)
    if response.status_code >= 500:
        return TransportError(f"database endpoint returned HTTP {response.status_code}: {message}")
    return DatabaseError(f"HTTP {response.status_code}: {message}")


class EngineExecutor:
    def __init__(self, url: URL | str, *, timeout: float) -> None:
        # NullPool: every call checks out a fresh connection and closes it afterwards.
        self._engine = create_async_engine(url, poolclass=NullPool)
        self._timeout = timeout

    async def execute(self, statement: Statement) -> StatementResult:
        async def run() -> StatementResult:
            async with self._engine.begin() as conn:
                return _engine_result(await conn.execute(_as_executable(statement)))

        return await self._guard(run, kind=_kind(statement))

    async def transaction(self, statements: Sequence[Statement]) -> list[StatementResult]:
        async def run() -> list[StatementResult]:
            results: list[StatementResult] = []
            async with self._engine.begin() as conn:
                for statement in statements:
                    results.append(_engine_result(await conn.execute(_as_executable(statement))))
            return results

        return await self._guard(run, kind="batch")

    async def run_sync(self, fn: Callable[[sa.Connection], T]) -> T:
        """Run a synchronous SQLAlchemy callable (e.g. reflection) on a fresh connection."""

        async def run() -> T:
            async with self._engine.connect() as conn:
                return await conn.run_sync(fn)

        return await self._guard(run, kind="reflect")

    async def _guard(self, run: Callable[[], Any], *, kind: str) -> Any:
        started = time.perf_counter()
        try:
            async with asyncio.timeout(self._timeout):
                result = await run()
        except TimeoutError as exc:
            log.error("db.timeout", driver="engine", statement=kind, timeout_s=self._timeout)
            raise TransportError(f"database call timed out after {self._timeout}s") from exc
        except sa_exc.IntegrityError as exc:
            raise ConstraintViolation(str(exc.orig), sqlstate=_sqlstate(exc)) from exc
        except sa_exc.DBAPIError as exc:
            if exc.connection_invalidated or isinstance(exc, sa_exc.InterfaceError):
                raise TransportError(f"database connection failed: {exc.orig}") from exc
            raise DatabaseError(str(exc.orig), sqlstate=_sqlstate(exc)) from exc
        except OSError as exc:
            raise TransportError(f"database unreachable: {exc}") from exc
        log.debug(
            "db.query",
            driver="engine",
            statement=kind,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return result


def _sqlstate(exc: sa_exc.DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _engine_result(result: sa.CursorResult[Any]) -> StatementResult:
    if result.returns_rows:
        rows = [dict(row._mapping) for row in result]
        return StatementResult(rows=rows, rowcount=len(rows))
    return StatementResult(rows=[], rowcount=max(result.rowcount, 0))


class RetryingExecutor:
    """
    Explicit retry policy for callers that want one. Only single statements are
    retried, and only on `TransportError`; batches are never replayed.
    """

    def __init__(self, inner: Executor, *, attempts: int = 3, backoff_seconds: float = 0.2) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.inner = inner
        self._attempts = attempts
        self._backoff = backoff_seconds

    async def execute(self, statement: Statement) -> StatementResult:
        for attempt in range(1, self._attempts + 1):
            try:
                return await self.inner.execute(statement)
            except TransportError:
                if attempt == self._attempts:
                    raise
                delay = self._backoff * 2 ** (attempt - 1)
                log.warning("db.retry", attempt=attempt, delay_s=delay, statement=_kind(statement))
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    async def transaction(self, statements: Sequence[Statement]) -> list[StatementResult]:
        return await self.inner.transaction(statements)


# --- Module Notes -----------------------------------------------------------
# Parameter values are never logged; only statement kind, driver and timing.
