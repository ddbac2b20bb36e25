"""
Driver connection tests: SQLite via aiosqlite, PostgreSQL SQL adaptation.
"""

import sqlite3

import pytest

from strata.db.backends import PostgresConnection, SQLiteConnection, mask_url
from strata.db.backends.base import validate_savepoint_name
from strata.db.backends.postgres import _parse_rowcount


class TestSQLiteConnection:

    @pytest.mark.asyncio
    async def test_execute_and_rowset(self):
        conn = await SQLiteConnection.open("sqlite:///:memory:")
        try:
            await conn.execute('CREATE TABLE t ("id" INTEGER PRIMARY KEY, "v" TEXT)')
            result = await conn.execute('INSERT INTO t ("v") VALUES (?), (?)', ["a", "b"])
            assert result.rowcount == 2
            assert result.last_row_id == 2
            rows = await conn.execute('SELECT * FROM t ORDER BY "id"')
            assert rows.rows == [{"id": 1, "v": "a"}, {"id": 2, "v": "b"}]
            assert rows.first() == {"id": 1, "v": "a"}
        finally:
            await conn.close()

    @pytest.mark.asyncio
    async def test_explicit_transactions(self):
        conn = await SQLiteConnection.open("sqlite:///:memory:")
        try:
            await conn.execute('CREATE TABLE t ("v" TEXT)')
            await conn.begin()
            await conn.execute('INSERT INTO t VALUES (?)', ["x"])
            await conn.savepoint("sp_1")
            await conn.execute('INSERT INTO t VALUES (?)', ["y"])
            await conn.rollback_to_savepoint("sp_1")
            await conn.release_savepoint("sp_1")
            await conn.commit()
            rows = await conn.execute("SELECT v FROM t")
            assert [r["v"] for r in rows] == ["x"]
        finally:
            await conn.close()

    @pytest.mark.asyncio
    async def test_closed_connection_is_broken(self):
        conn = await SQLiteConnection.open("sqlite:///:memory:")
        await conn.close()
        with pytest.raises(Exception):
            await conn.execute("SELECT 1")
        assert conn.is_broken

    @pytest.mark.asyncio
    async def test_caller_error_keeps_connection_healthy(self):
        conn = await SQLiteConnection.open("sqlite:///:memory:")
        try:
            with pytest.raises(sqlite3.ProgrammingError):
                await conn.execute("SELECT ?", [1, 2])
            with pytest.raises(sqlite3.ProgrammingError):
                await conn.execute("SELECT 1; SELECT 2")
            assert not conn.is_broken
            rows = await conn.execute("SELECT ? AS v", [7])
            assert rows.first() == {"v": 7}
        finally:
            await conn.close()

    def test_parse_url(self):
        assert SQLiteConnection._parse_url("sqlite:///:memory:") == ":memory:"
        assert SQLiteConnection._parse_url("sqlite:///data/app.db") == "data/app.db"
        assert SQLiteConnection._parse_url("sqlite:////tmp/app.db") == "/tmp/app.db"
        assert SQLiteConnection._parse_url("sqlite://") == ":memory:"

    def test_dialect(self):
        assert SQLiteConnection.capabilities.name == "sqlite"


class TestPostgresAdaptation:

    def setup_method(self):
        self.conn = PostgresConnection(connection=None)

    def test_numbered_placeholders(self):
        assert self.conn.adapt_sql('SELECT * FROM t WHERE a = ? AND b IN (?, ?)') == (
            'SELECT * FROM t WHERE a = $1 AND b IN ($2, $3)'
        )

    def test_question_mark_in_literal(self):
        assert self.conn.adapt_sql("SELECT '?' AS q, 'it''s?' AS r WHERE x = ?") == (
            "SELECT '?' AS q, 'it''s?' AS r WHERE x = $1"
        )

    def test_capabilities(self):
        caps = PostgresConnection.capabilities
        assert caps.name == "postgresql"
        assert caps.supports_returning
        assert caps.param_style == "numeric"

    @pytest.mark.parametrize("status, count", [
        ("UPDATE 3", 3),
        ("INSERT 0 2", 2),
        ("DELETE 0", 0),
        ("SELECT 5", 5),
        ("BEGIN", -1),
        (None, -1),
    ])
    def test_rowcount(self, status, count):
        assert _parse_rowcount(status) == count


class TestHelpers:

    def test_mask_url(self):
        assert mask_url("postgresql://app:secret@db:5432/app") == "postgresql://app:***@db:5432/app"
        assert mask_url("sqlite:///app.db") == "sqlite:///app.db"

    def test_savepoint_name(self):
        assert validate_savepoint_name("sp_1") == "sp_1"
        with pytest.raises(ValueError):
            validate_savepoint_name("1; DROP")
