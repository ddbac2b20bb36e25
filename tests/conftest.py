"""
Shared test fixtures and helpers for the Strata test suite.
"""

import asyncio
from typing import Any, List, Optional, Sequence

import pytest
import pytest_asyncio

from strata.db.backends.base import AdapterCapabilities, DriverConnection, RowSet
from strata.db.client import Client
from strata.db.engine import Database


# ============================================================================
# Fake driver connection
# ============================================================================


class FakeConnection(DriverConnection):
    """
    In-memory driver connection that records every statement.

    ``fail_on`` holds statement prefixes that raise ``RuntimeError``;
    ``delay`` makes every statement sleep first; ``rows`` is returned
    from each ``execute``.
    """

    capabilities = AdapterCapabilities(supports_returning=True, name="sqlite")
    opened = 0

    def __init__(self) -> None:
        super().__init__()
        FakeConnection.opened += 1
        self.number = FakeConnection.opened
        self.statements: List[str] = []
        self.params: List[List[Any]] = []
        self.fail_on: List[str] = []
        self.delay: Optional[float] = None
        self.rows: List[dict] = []
        self.rowcount = 0
        self.closed = False

    @classmethod
    async def open(cls, url: str = "fake://", **options: Any) -> "FakeConnection":
        return cls()

    async def close(self) -> None:
        self.closed = True

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> RowSet:
        if self.delay:
            await asyncio.sleep(self.delay)
        if any(sql.startswith(prefix) for prefix in self.fail_on):
            raise RuntimeError(f"driver rejected: {sql}")
        self.statements.append(sql)
        self.params.append(list(params or []))
        return RowSet(rows=list(self.rows), rowcount=self.rowcount)


@pytest.fixture
def fake_conn():
    return FakeConnection()


@pytest.fixture
def fake_client(fake_conn):
    return Client(fake_conn)


# ============================================================================
# SQLite-backed fixtures
# ============================================================================

USERS_DDL = (
    'CREATE TABLE "users" ('
    '"id" INTEGER PRIMARY KEY AUTOINCREMENT, '
    '"name" TEXT NOT NULL, '
    '"email" TEXT UNIQUE, '
    '"age" INTEGER)'
)

POSTS_DDL = (
    'CREATE TABLE "posts" ('
    '"id" INTEGER PRIMARY KEY AUTOINCREMENT, '
    '"title" TEXT NOT NULL, '
    '"body" TEXT, '
    '"published" INTEGER NOT NULL DEFAULT 0)'
)


@pytest_asyncio.fixture
async def db():
    # One in-memory connection: every lease sees the same database
    database = Database("sqlite:///:memory:", pool_size=1, acquire_timeout=1.0)
    await database.connect()
    yield database
    await database.disconnect()


@pytest_asyncio.fixture
async def client(db):
    client = await db.client()
    await client.execute(USERS_DDL)
    await client.execute(POSTS_DDL)
    yield client
    if not client.released:
        if client.in_transaction:
            await client.rollback_all()
        await client.release()


@pytest_asyncio.fixture
async def file_db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'strata.db'}", pool_size=3, acquire_timeout=1.0)
    await database.connect()
    async with database.session() as setup:
        await setup.execute(USERS_DDL)
    yield database
    await database.disconnect()
