"""Tests for the asyncpg Database wrapper using an in-memory pool."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest

from memer.storage.database import Database


class FakeConnection:
    def __init__(self, records=None):
        self.records = records or []
        self.transactions = 0
        self.cursor_args = None
        self.execute = AsyncMock(return_value="UPDATE 1")
        self.fetchval = AsyncMock(return_value=1)

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield

    def cursor(self, query, *args, prefetch=None):
        self.cursor_args = (query, args, prefetch)

        async def _iterate():
            for record in self.records:
                yield record

        return _iterate()


class FakePool:
    def __init__(self, conn: FakeConnection):
        self.conn = conn
        self.close = AsyncMock()

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


@pytest.fixture
def conn() -> FakeConnection:
    return FakeConnection(records=[{"channel": "1"}, {"channel": "2"}])


@pytest.fixture
def db(conn) -> Database:
    database = Database(database_url="postgresql://u:p@localhost/memer_test")
    database._pool = FakePool(conn)
    return database


def test_pool_requires_connect():
    with pytest.raises(RuntimeError, match="not connected"):
        Database(database_url="postgresql://u:p@localhost/x").pool


@pytest.mark.asyncio
async def test_connect_and_close():
    pool = FakePool(FakeConnection())
    with patch(
        "memer.storage.database.asyncpg.create_pool", new=AsyncMock(return_value=pool)
    ) as create_pool:
        async with Database(
            database_url="postgresql://u:p@localhost/x", min_size=2, max_size=4
        ) as db:
            assert db.pool is pool

    create_pool.assert_awaited_once()
    assert create_pool.call_args.kwargs["min_size"] == 2
    assert create_pool.call_args.kwargs["max_size"] == 4
    pool.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_connect_failure_propagates():
    with patch(
        "memer.storage.database.asyncpg.create_pool",
        new=AsyncMock(side_effect=OSError("connection refused")),
    ):
        with pytest.raises(OSError):
            await Database(database_url="postgresql://u:p@localhost/x").connect()


@pytest.mark.asyncio
async def test_execute_returns_status(db, conn):
    status = await db.execute("UPDATE channels SET name = $2 WHERE channel = $1", "1", "x")

    assert status == "UPDATE 1"
    conn.execute.assert_awaited_once_with(
        "UPDATE channels SET name = $2 WHERE channel = $1", "1", "x"
    )


@pytest.mark.asyncio
async def test_iterate_streams_inside_transaction(db, conn):
    rows = [r async for r in db.iterate("SELECT * FROM channels", prefetch=10)]

    assert rows == [{"channel": "1"}, {"channel": "2"}]
    assert conn.transactions == 1
    assert conn.cursor_args == ("SELECT * FROM channels", (), 10)


@pytest.mark.asyncio
async def test_health_check(db, conn):
    assert await db.health_check() is True

    conn.fetchval.side_effect = ConnectionError("gone")
    assert await db.health_check() is False
