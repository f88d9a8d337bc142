from __future__ import annotations

from collections.abc import Sequence

import pytest

from storefront_data.db.executors import RetryingExecutor, Statement, StatementResult
from storefront_data.errors import DatabaseError, TransportError


class FlakyExecutor:
    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or TransportError("connection reset")
        self.calls = 0
        self.batches = 0

    async def execute(self, statement: Statement) -> StatementResult:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return StatementResult(rows=[{"n": 1}], rowcount=1)

    async def transaction(self, statements: Sequence[Statement]) -> list[StatementResult]:
        self.batches += 1
        raise self.error


@pytest.mark.asyncio
async def test_transport_errors_are_retried() -> None:
    inner = FlakyExecutor(failures=2)
    result = await RetryingExecutor(inner, attempts=3, backoff_seconds=0).execute("SELECT 1")
    assert result.rows == [{"n": 1}]
    assert inner.calls == 3


@pytest.mark.asyncio
async def test_gives_up_after_last_attempt() -> None:
    inner = FlakyExecutor(failures=5)
    with pytest.raises(TransportError):
        await RetryingExecutor(inner, attempts=2, backoff_seconds=0).execute("SELECT 1")
    assert inner.calls == 2


@pytest.mark.asyncio
async def test_database_errors_are_not_retried() -> None:
    inner = FlakyExecutor(failures=1, error=DatabaseError("syntax error", sqlstate="42601"))
    with pytest.raises(DatabaseError):
        await RetryingExecutor(inner, attempts=3, backoff_seconds=0).execute("SELEC 1")
    assert inner.calls == 1


@pytest.mark.asyncio
async def test_batches_are_never_replayed() -> None:
    inner = FlakyExecutor(failures=1)
    with pytest.raises(TransportError):
        await RetryingExecutor(inner, attempts=3, backoff_seconds=0).transaction(["SELECT 1"])
    assert inner.batches == 1


def test_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        RetryingExecutor(FlakyExecutor(0), attempts=0)
