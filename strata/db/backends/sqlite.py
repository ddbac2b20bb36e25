"""
Strata DB Backend — SQLite connection via aiosqlite.

This is the default backend. The underlying sqlite3 connection runs in
autocommit mode (``isolation_level=None``) so that BEGIN, COMMIT and
savepoint statements issued by the client are the only transaction
boundaries.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Optional, Sequence

from .base import (
    DriverConnection,
    AdapterCapabilities,
    RowSet,
)

try:
    import aiosqlite
except ImportError:
    aiosqlite = None  # type: ignore[assignment]

logger = logging.getLogger("strata.db.backends.sqlite")

__all__ = ["SQLiteConnection"]


class SQLiteConnection(DriverConnection):
    """
    SQLite connection using aiosqlite.

    Features:
    - WAL journal mode for concurrent readers on file databases
    - Foreign key enforcement
    - RETURNING support on SQLite 3.35+
    """

    capabilities = AdapterCapabilities(
        supports_returning=sqlite3.sqlite_version_info >= (3, 35, 0),
        supports_ilike=False,
        supports_fulltext=False,
        param_style="qmark",
        name="sqlite",
    )

    def __init__(self, connection: Any, path: str):
        super().__init__()
        self._connection = connection
        self._path = path

    @classmethod
    async def open(cls, url: str, **options: Any) -> SQLiteConnection:
        if aiosqlite is None:
            raise ImportError(
                "aiosqlite is required for SQLite backend. "
                "Install: pip install aiosqlite"
            )
        db_path = cls._parse_url(url)
        timeout = options.get("connect_timeout") or 5.0
        connection = await aiosqlite.connect(db_path, timeout=timeout, isolation_level=None)
        connection.row_factory = aiosqlite.Row
        await connection.execute("PRAGMA foreign_keys=ON")
        if db_path != ":memory:":
            await connection.execute("PRAGMA journal_mode=WAL")
        logger.info(f"SQLite connected: {db_path}")
        return cls(connection, db_path)

    async def close(self) -> None:
        if self._connection is None:
            return
        try:
            await self._connection.close()
        finally:
            self._connection = None
            logger.debug(f"SQLite connection closed: {self._path}")

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> RowSet:
        if self._connection is None:
            self.mark_broken()
            raise sqlite3.ProgrammingError("Cannot operate on a closed connection")
        try:
            cursor = await self._connection.execute(sql, list(params or []))
            rows = await cursor.fetchall()
        except (sqlite3.ProgrammingError, ValueError) as exc:
            # Bad bindings raise these too; only a dead handle is broken
            if self._handle_closed(exc):
                self.mark_broken()
            raise
        result = RowSet(
            rows=[dict(row) for row in rows],
            rowcount=cursor.rowcount,
            last_row_id=cursor.lastrowid,
        )
        await cursor.close()
        return result

    def _handle_closed(self, exc: Exception) -> bool:
        conn = self._connection
        if conn is None or not getattr(conn, "_running", True):
            return True
        return "closed" in str(exc).lower()

    @property
    def path(self) -> str:
        return self._path

    @staticmethod
    def _parse_url(url: str) -> str:
        """Extract file path from sqlite URL."""
        for prefix in ("sqlite:///", "sqlite://"):
            if url.startswith(prefix):
                path = url[len(prefix):]
                return path or ":memory:"
        return url.replace("sqlite:", "").lstrip("/") or ":memory:"
