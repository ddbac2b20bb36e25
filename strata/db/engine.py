"""
Strata Database Engine — owns the pool and hands out transaction scopes.

Provides:
- Database: config + connection pool + client/session factories
- Driver selection by URL scheme (sqlite, postgres/postgresql)

Usage:
    db = Database("sqlite:///app.db", pool_size=5)
    await db.connect()

    async with db.session() as client:
        users = Repository(Entity("users", ["id", "name"]), client)
        await users.create({"name": "Alice"})

    async with db.transaction() as client:
        await client.execute('UPDATE "users" SET "name" = ?', ["Bob"])

    await db.disconnect()
"""

from __future__ import annotations

import asyncio
import functools
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Type, Union

from ..config import DatabaseConfig
from ..faults.domains import DatabaseConnectionFault
from .backends.base import DriverConnection, mask_url
from .client import Client
from .pool import ConnectionPool

logger = logging.getLogger("strata.db.engine")

__all__ = ["Database"]


def _driver_class(url: str) -> Type[DriverConnection]:
    """Pick the connection class for a URL scheme."""
    scheme = url.split(":", 1)[0].lower()
    if scheme == "sqlite":
        from .backends.sqlite import SQLiteConnection
        return SQLiteConnection
    elif scheme in ("postgres", "postgresql"):
        from .backends.postgres import PostgresConnection
        return PostgresConnection
    raise DatabaseConnectionFault(
        url=mask_url(url),
        reason=f"Unsupported database URL scheme: {scheme!r}",
    )


class Database:
    """
    Async database engine.

    Accepts either a ``DatabaseConfig`` or a URL plus keyword overrides
    for any ``DatabaseConfig`` field:

        Database("postgresql://app:secret@db/app", pool_size=10)
        Database(ConfigLoader.load(paths=["strata.yaml"]).get_database_config())
    """

    def __init__(self, config: Union[DatabaseConfig, str, None] = None, **options: Any):
        if isinstance(config, DatabaseConfig):
            if options:
                config = DatabaseConfig.from_dict({**config.__dict__, **options})
        elif isinstance(config, str):
            config = DatabaseConfig(url=config, **options)
        else:
            config = DatabaseConfig(**options)
        self._config = config
        self._url = config.dsn
        self._driver = _driver_class(self._url)
        self._pool: Optional[ConnectionPool] = None
        self._lock = asyncio.Lock()

    # ── Connection management ────────────────────────────────────────

    async def connect(self) -> None:
        """Create the connection pool. Connections are opened on demand."""
        if self._pool is not None:
            return
        async with self._lock:
            if self._pool is not None:
                return
            opener = functools.partial(
                self._driver.open,
                self._url,
                connect_timeout=self._config.connect_timeout,
            )
            self._pool = ConnectionPool(
                opener,
                self._config.pool_size,
                acquire_timeout=self._config.acquire_timeout,
                idle_timeout=self._config.idle_timeout,
                name=mask_url(self._url),
            )
            logger.info(
                f"Database ready ({self.dialect}, pool size {self._config.pool_size}): "
                f"{mask_url(self._url)}"
            )

    async def disconnect(self) -> None:
        """Shut the pool down. Leased connections close as they come back."""
        async with self._lock:
            if self._pool is None:
                return
            pool, self._pool = self._pool, None
        await pool.shutdown()
        logger.info("Database disconnected")

    async def client(self, timeout: Optional[float] = None) -> Client:
        """
        Lease a connection and wrap it in a ``Client``.

        The caller owns the client and must ``release()`` it.

        Args:
            timeout: Seconds to wait for a free connection; defaults to
                the configured ``acquire_timeout``
        """
        if self._pool is None:
            await self.connect()
        if timeout is None:
            conn = await self._pool.acquire()
        else:
            conn = await self._pool.acquire(timeout)
        return Client(conn, self._pool, statement_timeout=self._config.statement_timeout)

    @asynccontextmanager
    async def session(self, timeout: Optional[float] = None) -> AsyncIterator[Client]:
        """
        Lease a client for the duration of the block.

        A transaction still open on exit is rolled back before the
        connection goes back to the pool.
        """
        client = await self.client(timeout)
        try:
            yield client
        finally:
            try:
                if client.in_transaction and not client.released:
                    logger.warning(
                        f"Session closed with open transaction (depth {client.depth}); rolling back"
                    )
                    await client.rollback_all()
            finally:
                if not client.released:
                    await client.release()

    @asynccontextmanager
    async def transaction(self, timeout: Optional[float] = None) -> AsyncIterator[Client]:
        """
        Lease a client with a begun transaction.

        Commits when the block exits cleanly; an exception from the block
        rolls everything back and propagates.

        Usage:
            async with db.transaction() as client:
                await repo.bind(client).create({...})
        """
        async with self.session(timeout) as client:
            await client.begin_transaction()
            try:
                yield client
            except Exception:
                if client.in_transaction:
                    await client.rollback_all()
                raise
            if client.poisoned:
                await client.rollback_all()
            else:
                await _commit_all(client)

    def repository(self, entity: Any, client: Client, kind: Optional[type] = None, **kwargs: Any):
        """Build a repository of ``kind`` (default ``Repository``) bound to ``client``."""
        from ..repository import Repository
        cls = kind or Repository
        return cls(entity, client, **kwargs)

    # ── Properties ───────────────────────────────────────────────────

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    @property
    def url(self) -> str:
        return self._url

    @property
    def dialect(self) -> str:
        return self._driver.capabilities.name

    @property
    def pool(self) -> Optional[ConnectionPool]:
        return self._pool

    @property
    def is_connected(self) -> bool:
        return self._pool is not None and not self._pool.closed

    def __repr__(self) -> str:
        return f"<Database {mask_url(self._url)} connected={self.is_connected}>"


async def _commit_all(client: Client) -> None:
    # Savepoints left open by the block are released before the final COMMIT
    while client.in_transaction:
        await client.commit()
