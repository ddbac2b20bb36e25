"""
Strata Client — one leased connection plus its transaction state.

The client tracks a nesting depth and a stack of savepoints:

- The first ``begin_transaction()`` opens a transaction (BEGIN), depth 1
- Each ``savepoint()`` pushes a SAVEPOINT, depth + 1
- ``commit()`` releases the innermost savepoint, or COMMITs at depth 1
- ``rollback()`` rolls back to the innermost savepoint, or ROLLBACKs
  at depth 1

Usage:
    client = await db.client()
    await client.begin_transaction()
    await client.execute('INSERT INTO "users" ("name") VALUES (?)', ["Alice"])
    await client.savepoint()
    try:
        await client.execute('INSERT INTO "posts" ("title") VALUES (?)', ["Hi"])
        await client.commit()       # releases the savepoint
    except QueryFault:
        await client.rollback()     # undoes only the post
    await client.commit()           # real COMMIT
    await client.release()

The client never rolls back on its own after a failed statement; the
caller decides whether to retry or unwind the scope.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from ..faults.domains import (
    AlreadyReleasedFault,
    InvalidArgumentsFault,
    QueryFault,
    TransactionStateFault,
)
from .backends.base import DriverConnection, RowSet, SAVEPOINT_NAME_RE

if TYPE_CHECKING:
    from .pool import ConnectionPool

logger = logging.getLogger("strata.db.client")

__all__ = ["Client"]


class Client:
    """
    Transaction manager over a single leased connection.

    Calls on one client are serialized by an ``asyncio.Lock``; a client
    must not be shared between concurrent units of work.
    """

    def __init__(
        self,
        connection: DriverConnection,
        pool: Optional[ConnectionPool] = None,
        *,
        statement_timeout: Optional[float] = None,
    ):
        self._connection = connection
        self._pool = pool
        self._statement_timeout = statement_timeout
        self._lock = asyncio.Lock()
        self._depth = 0
        self._savepoints: List[str] = []
        self._released = False
        self._poisoned = False

    # ── Query execution ──────────────────────────────────────────────

    async def execute(
        self,
        sql: str,
        params: Optional[Sequence[Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> RowSet:
        """
        Execute a statement on the leased connection.

        Args:
            sql: SQL with ``?`` placeholders
            params: Positional parameter values
            timeout: Deadline in seconds; defaults to the configured
                statement timeout

        Raises:
            QueryFault: The driver failed, or the deadline expired
            TransactionStateFault: The client was poisoned by a deadline
            AlreadyReleasedFault: The client was released
        """
        async with self._lock:
            self._check_usable("execute")
            return await self._run(sql, params or [], timeout)

    async def fetch_all(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> List[Dict[str, Any]]:
        """Execute query and return all rows as dicts."""
        return (await self.execute(sql, params)).rows

    async def fetch_one(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """Execute query and return the first row, or None."""
        return (await self.execute(sql, params)).first()

    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute query and return the first column of the first row."""
        row = (await self.execute(sql, params)).first()
        if row is None:
            return None
        return next(iter(row.values()))

    async def _run(self, sql: str, params: Sequence[Any], timeout: Optional[float]) -> RowSet:
        if timeout is None:
            timeout = self._statement_timeout
        logger.debug(f"execute: {sql[:200]} [{len(params)} params]")
        try:
            if timeout is None:
                return await self._connection.execute(sql, params)
            return await asyncio.wait_for(self._connection.execute(sql, params), timeout=timeout)
        except asyncio.TimeoutError as exc:
            self._poisoned = True
            raise QueryFault(
                operation="execute",
                reason=f"statement exceeded {timeout}s deadline",
                sql=sql,
                metadata={"timeout": timeout},
            ) from exc
        except asyncio.CancelledError:
            self._poisoned = True
            raise
        except Exception as exc:
            raise QueryFault(operation="execute", reason=str(exc), sql=sql) from exc

    async def _control(
        self, operation: str, coro_fn, *args: Any, timeout: Optional[float] = None
    ) -> None:
        """Run a transaction-control call under the deadline, wrapping driver errors."""
        if timeout is None:
            timeout = self._statement_timeout
        try:
            if timeout is None:
                await coro_fn(*args)
            else:
                await asyncio.wait_for(coro_fn(*args), timeout=timeout)
        except asyncio.TimeoutError as exc:
            self._poisoned = True
            raise QueryFault(
                operation=operation,
                reason=f"{operation} exceeded {timeout}s deadline",
                metadata={"timeout": timeout},
            ) from exc
        except asyncio.CancelledError:
            self._poisoned = True
            raise
        except Exception as exc:
            raise QueryFault(operation=operation, reason=str(exc)) from exc

    # ── Transaction scope ────────────────────────────────────────────

    async def begin_transaction(self, *, timeout: Optional[float] = None) -> None:
        """Open the outermost transaction. Not reentrant."""
        async with self._lock:
            self._check_usable("begin transaction")
            if self._depth > 0:
                raise TransactionStateFault(
                    "begin transaction",
                    f"a transaction is already active (depth {self._depth}); use savepoint()",
                )
            await self._control("begin", self._connection.begin, timeout=timeout)
            self._depth = 1
            logger.debug("Began transaction")

    async def savepoint(
        self, name: Optional[str] = None, *, timeout: Optional[float] = None
    ) -> str:
        """
        Push a named savepoint inside the active transaction.

        Returns:
            The savepoint name (generated when not given)
        """
        async with self._lock:
            self._check_usable("create savepoint")
            if self._depth < 1:
                raise TransactionStateFault("create savepoint", "no active transaction")
            if name is None:
                name = f"sp_{self._depth}_{uuid.uuid4().hex[:12]}"
            elif not SAVEPOINT_NAME_RE.match(name):
                raise InvalidArgumentsFault(
                    f"invalid savepoint name {name!r}; use alphanumeric + underscore only"
                )
            if name in self._savepoints:
                raise TransactionStateFault("create savepoint", f"savepoint {name!r} is already active")
            await self._control("savepoint", self._connection.savepoint, name, timeout=timeout)
            self._savepoints.append(name)
            self._depth += 1
            logger.debug(f"Created savepoint {name} (depth {self._depth})")
            return name

    async def commit(self, *, timeout: Optional[float] = None) -> None:
        """Release the innermost savepoint, or COMMIT the outermost scope."""
        async with self._lock:
            self._check_usable("commit")
            if self._depth == 0:
                raise TransactionStateFault("commit", "no active transaction")
            if self._depth == 1:
                await self._control("commit", self._connection.commit, timeout=timeout)
                self._depth = 0
                self._savepoints.clear()
                logger.debug("Committed transaction")
            else:
                name = self._savepoints[-1]
                await self._control(
                    "release savepoint", self._connection.release_savepoint, name, timeout=timeout
                )
                self._savepoints.pop()
                self._depth -= 1
                logger.debug(f"Released savepoint {name} (depth {self._depth})")

    async def rollback(self, *, timeout: Optional[float] = None) -> None:
        """Roll back to the innermost savepoint, or ROLLBACK the outermost scope."""
        async with self._lock:
            self._check_usable("rollback")
            if self._depth == 0:
                raise TransactionStateFault("rollback", "no active transaction")
            if self._depth == 1:
                await self._control("rollback", self._connection.rollback, timeout=timeout)
                self._depth = 0
                self._savepoints.clear()
                logger.debug("Rolled back transaction")
            else:
                name = self._savepoints[-1]
                await self._control(
                    "rollback to savepoint", self._connection.rollback_to_savepoint, name, timeout=timeout
                )
                await self._control(
                    "release savepoint", self._connection.release_savepoint, name, timeout=timeout
                )
                self._savepoints.pop()
                self._depth -= 1
                logger.debug(f"Rolled back savepoint {name} (depth {self._depth})")

    async def rollback_all(self, *, timeout: Optional[float] = None) -> None:
        """
        Unwind every nesting level with a single full ROLLBACK.

        Allowed on a poisoned client; a no-op when no transaction is active.
        """
        async with self._lock:
            if self._released:
                raise AlreadyReleasedFault("rollback")
            if self._depth == 0:
                return
            depth = self._depth
            try:
                await self._control("rollback", self._connection.rollback, timeout=timeout)
            except QueryFault:
                # The session is in an unknown state; never hand it out again
                self._poisoned = True
                raise
            finally:
                self._depth = 0
                self._savepoints.clear()
            logger.debug(f"Rolled back transaction from depth {depth}")

    async def release(self) -> None:
        """
        Hand the connection back to the pool.

        Raises:
            TransactionStateFault: A transaction is still active
            AlreadyReleasedFault: Called a second time
        """
        async with self._lock:
            if self._released:
                raise AlreadyReleasedFault("release")
            if self._depth > 0:
                raise TransactionStateFault(
                    "release",
                    f"transaction still active (depth {self._depth}); commit or roll back first",
                )
            self._released = True
            if self._pool is None:
                await self._connection.close()
            elif self._poisoned:
                await self._pool.discard(self._connection)
            else:
                await self._pool.release(self._connection)

    def _check_usable(self, operation: str) -> None:
        if self._released:
            raise AlreadyReleasedFault(operation)
        if self._poisoned:
            raise TransactionStateFault(
                operation,
                "client was interrupted mid-statement; roll back and release it",
            )

    # ── Properties ───────────────────────────────────────────────────

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @property
    def savepoints(self) -> Tuple[str, ...]:
        return tuple(self._savepoints)

    @property
    def released(self) -> bool:
        return self._released

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    @property
    def dialect(self) -> str:
        return self._connection.dialect

    @property
    def capabilities(self):
        return self._connection.capabilities

    @property
    def connection(self) -> DriverConnection:
        """Direct access to the leased connection (advanced use)."""
        return self._connection

    def __repr__(self) -> str:
        state = "released" if self._released else f"depth={self._depth}"
        return f"<Client {self.dialect} {state}>"
