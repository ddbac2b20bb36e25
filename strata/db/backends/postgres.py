"""
Strata DB Backend — PostgreSQL connection via asyncpg.

Each instance owns one asyncpg connection; pooling is done by
``strata.db.pool.ConnectionPool``, not by asyncpg.

Requires asyncpg:
    pip install asyncpg
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from .base import (
    DriverConnection,
    AdapterCapabilities,
    RowSet,
    mask_url,
    validate_savepoint_name,
)

logger = logging.getLogger("strata.db.backends.postgres")

__all__ = ["PostgresConnection"]

# Try importing async postgres driver
try:
    import asyncpg
    _HAS_ASYNCPG = True
except ImportError:
    asyncpg = None  # type: ignore
    _HAS_ASYNCPG = False


def _connection_errors() -> tuple:
    """Driver exceptions after which the session cannot be reused."""
    errors: list = [ConnectionError, OSError]
    if _HAS_ASYNCPG:
        errors.extend([
            asyncpg.exceptions.ConnectionDoesNotExistError,
            asyncpg.exceptions.InterfaceError,
        ])
    return tuple(errors)


class PostgresConnection(DriverConnection):
    """
    PostgreSQL connection using asyncpg.

    Features:
    - Automatic ``?`` → ``$N`` placeholder conversion (string-literal safe)
    - Affected-row counts parsed from the command status
    - Transaction control sent through the simple query protocol
    """

    capabilities = AdapterCapabilities(
        supports_returning=True,
        supports_ilike=True,
        supports_fulltext=True,
        param_style="numeric",  # $1, $2, ...
        name="postgresql",
    )

    def __init__(self, connection: Any):
        super().__init__()
        self._connection = connection

    @classmethod
    async def open(cls, url: str, **options: Any) -> PostgresConnection:
        if not _HAS_ASYNCPG:
            raise ImportError(
                "asyncpg is required for PostgreSQL support.\n"
                "Install: pip install asyncpg"
            )
        timeout = options.get("connect_timeout") or 10.0
        # asyncpg only understands the postgresql:// / postgres:// schemes
        connection = await asyncpg.connect(url, timeout=timeout)
        logger.info(f"PostgreSQL connected via asyncpg: {mask_url(url)}")
        return cls(connection)

    async def close(self) -> None:
        if self._connection is None:
            return
        try:
            await self._connection.close()
        finally:
            self._connection = None
            logger.debug("PostgreSQL connection closed")

    def adapt_sql(self, sql: str) -> str:
        """
        Convert ``?`` placeholders to ``$1, $2, ...`` for asyncpg.

        String-literal safe: skips ``?`` inside single-quoted strings.
        """
        result: list[str] = []
        param_idx = 0
        in_string = False
        i = 0
        while i < len(sql):
            ch = sql[i]
            if ch == "'" and not in_string:
                in_string = True
                result.append(ch)
            elif ch == "'" and in_string:
                # Check for escaped quote ''
                if i + 1 < len(sql) and sql[i + 1] == "'":
                    result.append("''")
                    i += 2
                    continue
                in_string = False
                result.append(ch)
            elif ch == "?" and not in_string:
                param_idx += 1
                result.append(f"${param_idx}")
            else:
                result.append(ch)
            i += 1
        return "".join(result)

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> RowSet:
        if self._connection is None or self._connection.is_closed():
            self.mark_broken()
            raise ConnectionError("PostgreSQL connection is closed")
        try:
            statement = await self._connection.prepare(self.adapt_sql(sql))
            records = await statement.fetch(*(params or []))
            status = statement.get_statusmsg()
        except _connection_errors():
            self.mark_broken()
            raise
        return RowSet(
            rows=[dict(record) for record in records],
            rowcount=_parse_rowcount(status),
        )

    async def _simple(self, sql: str) -> None:
        if self._connection is None or self._connection.is_closed():
            self.mark_broken()
            raise ConnectionError("PostgreSQL connection is closed")
        try:
            await self._connection.execute(sql)
        except _connection_errors():
            self.mark_broken()
            raise

    # ── Transactions ─────────────────────────────────────────────────

    async def begin(self) -> None:
        await self._simple("BEGIN")

    async def commit(self) -> None:
        await self._simple("COMMIT")

    async def rollback(self) -> None:
        await self._simple("ROLLBACK")

    async def savepoint(self, name: str) -> None:
        await self._simple(f'SAVEPOINT "{validate_savepoint_name(name)}"')

    async def release_savepoint(self, name: str) -> None:
        await self._simple(f'RELEASE SAVEPOINT "{validate_savepoint_name(name)}"')

    async def rollback_to_savepoint(self, name: str) -> None:
        await self._simple(f'ROLLBACK TO SAVEPOINT "{validate_savepoint_name(name)}"')

    @property
    def is_broken(self) -> bool:
        if self._connection is not None and self._connection.is_closed():
            return True
        return super().is_broken


def _parse_rowcount(status: Optional[str]) -> int:
    """``'UPDATE 3'`` → 3, ``'INSERT 0 2'`` → 2, ``'SELECT 5'`` → 5."""
    if not status:
        return -1
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else -1
