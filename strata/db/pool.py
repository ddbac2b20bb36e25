"""
Strata Connection Pool — bounded, asyncio-safe leasing of driver connections.

Policy on exhaustion: callers wait (FIFO) up to ``acquire_timeout``
seconds for a connection to be released, then fail with
``PoolExhaustedFault``. ``acquire_timeout=None`` waits forever.
Shutting the pool down fails every waiting caller with
``PoolClosedFault``.

Usage:
    pool = ConnectionPool(lambda: SQLiteConnection.open(url), size=5)
    conn = await pool.acquire()
    try:
        await conn.execute("SELECT 1")
    finally:
        await pool.release(conn)
    await pool.shutdown()
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional, Tuple

from ..faults.domains import (
    DatabaseConnectionFault,
    InvalidArgumentsFault,
    PoolClosedFault,
    PoolExhaustedFault,
)
from .backends.base import DriverConnection

logger = logging.getLogger("strata.db.pool")

__all__ = ["ConnectionPool", "Opener"]

Opener = Callable[[], Awaitable[DriverConnection]]

_UNSET = object()


class ConnectionPool:
    """
    Fixed-size pool of driver connections.

    A semaphore bounds the number of live leases to ``size``; idle
    connections sit in a LIFO free-list and are opened lazily on demand.
    Broken connections are closed on release and their slot is refilled
    by the next acquire.
    """

    def __init__(
        self,
        opener: Opener,
        size: int = 5,
        *,
        acquire_timeout: Optional[float] = 30.0,
        idle_timeout: Optional[float] = None,
        name: str = "default",
    ):
        if not isinstance(size, int) or isinstance(size, bool) or size < 1:
            raise InvalidArgumentsFault(f"pool size must be a positive integer, got {size!r}")
        self._opener = opener
        self._size = size
        self._acquire_timeout = acquire_timeout
        self._idle_timeout = idle_timeout
        self._name = name
        self._slots = asyncio.Semaphore(size)
        self._lock = asyncio.Lock()
        # (connection, time it was returned)
        self._idle: Deque[Tuple[DriverConnection, float]] = deque()
        self._leased: Dict[int, DriverConnection] = {}
        self._closed = False
        self._closing = asyncio.Event()

    async def acquire(self, timeout=_UNSET) -> DriverConnection:
        """
        Lease a connection, waiting up to ``timeout`` seconds.

        Raises:
            PoolClosedFault: The pool has been shut down.
            PoolExhaustedFault: No connection was released in time.
            DatabaseConnectionFault: A new connection could not be opened.
        """
        if self._closed:
            raise PoolClosedFault()
        if timeout is _UNSET:
            timeout = self._acquire_timeout

        started = time.monotonic()
        try:
            await self._wait_for_slot(timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Pool '{self._name}' exhausted: {self.in_use}/{self._size} leased, "
                f"waited {time.monotonic() - started:.2f}s"
            )
            raise PoolExhaustedFault(self._size, timeout) from None

        if self._closed:
            self._slots.release()
            raise PoolClosedFault()

        try:
            conn = await self._checkout()
        except BaseException:
            self._slots.release()
            raise
        return conn

    async def _wait_for_slot(self, timeout: Optional[float]) -> None:
        """
        Take a semaphore permit, or fail when ``timeout`` elapses or the
        pool shuts down while waiting.
        """
        if timeout is not None and timeout <= 0:
            if self._slots.locked():
                raise asyncio.TimeoutError()
            await self._slots.acquire()
            return

        slot = asyncio.ensure_future(self._slots.acquire())
        closing = asyncio.ensure_future(self._closing.wait())
        try:
            await asyncio.wait(
                {slot, closing}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except BaseException:
            self._abandon(slot)
            raise
        finally:
            closing.cancel()

        if slot.done() and not slot.cancelled():
            return
        self._abandon(slot)
        if self._closing.is_set():
            raise PoolClosedFault()
        raise asyncio.TimeoutError()

    def _abandon(self, slot: "asyncio.Future") -> None:
        # A permit granted after we stopped waiting goes straight back.
        def give_back(task):
            if not task.cancelled() and task.exception() is None:
                self._slots.release()

        if slot.done():
            give_back(slot)
        else:
            slot.add_done_callback(give_back)
            slot.cancel()

    async def _checkout(self) -> DriverConnection:
        stale = []
        async with self._lock:
            conn = None
            while self._idle:
                candidate, returned_at = self._idle.pop()
                if candidate.is_broken or self._expired(returned_at):
                    stale.append(candidate)
                    continue
                conn = candidate
                break
            if conn is not None:
                self._leased[id(conn)] = conn

        for old in stale:
            await self._close_quietly(old)

        if conn is None:
            try:
                conn = await self._opener()
            except (ImportError, DatabaseConnectionFault):
                raise
            except Exception as exc:
                raise DatabaseConnectionFault(
                    url=f"<pool:{self._name}>",
                    reason=str(exc),
                ) from exc
            async with self._lock:
                self._leased[id(conn)] = conn
            logger.debug(f"Pool '{self._name}' opened connection ({self.in_use}/{self._size} leased)")
        return conn

    def _expired(self, returned_at: float) -> bool:
        if self._idle_timeout is None:
            return False
        return time.monotonic() - returned_at > self._idle_timeout

    async def release(self, conn: DriverConnection) -> None:
        """
        Return a leased connection.

        Broken connections, and every connection once the pool is shut
        down, are closed instead of being kept.
        """
        async with self._lock:
            if self._leased.pop(id(conn), None) is None:
                raise InvalidArgumentsFault("connection was not leased from this pool")
            keep = not (self._closed or conn.is_broken)
            if keep:
                self._idle.append((conn, time.monotonic()))
        try:
            if not keep:
                if conn.is_broken:
                    logger.warning(f"Pool '{self._name}' discarding broken connection")
                await self._close_quietly(conn)
        finally:
            self._slots.release()

    async def discard(self, conn: DriverConnection) -> None:
        """Close a leased connection and free its slot without reusing it."""
        conn.mark_broken()
        await self.release(conn)

    async def shutdown(self) -> None:
        """Reject new acquires and close idle connections. Idempotent."""
        async with self._lock:
            if self._closed and not self._idle:
                return
            self._closed = True
            self._closing.set()
            idle = [conn for conn, _ in self._idle]
            self._idle.clear()
        for conn in idle:
            await self._close_quietly(conn)
        logger.info(
            f"Pool '{self._name}' shut down ({len(idle)} idle closed, "
            f"{len(self._leased)} still leased)"
        )

    async def _close_quietly(self, conn: DriverConnection) -> None:
        try:
            await conn.close()
        except Exception as exc:
            logger.warning(f"Pool '{self._name}' failed to close connection: {exc}")

    # ── Properties ───────────────────────────────────────────────────

    @property
    def size(self) -> int:
        return self._size

    @property
    def in_use(self) -> int:
        return len(self._leased)

    @property
    def idle(self) -> int:
        return len(self._idle)

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        return (
            f"<ConnectionPool {self._name!r} size={self._size} "
            f"in_use={self.in_use} idle={self.idle} closed={self._closed}>"
        )
