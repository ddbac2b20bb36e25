"""
Strata Database — connection pool, transaction scopes and engine.

Provides:
- ConnectionPool: bounded leasing of driver connections
- Client: one leased connection plus transaction/savepoint state
- Database: pool owner handing out clients, sessions and transactions
- SQLite (aiosqlite) and PostgreSQL (asyncpg) driver connections
"""

from .pool import ConnectionPool
from .client import Client
from .engine import Database

# Driver connections
from .backends import (
    DriverConnection,
    AdapterCapabilities,
    RowSet,
    SQLiteConnection,
    PostgresConnection,
)

__all__ = [
    "ConnectionPool",
    "Client",
    "Database",
    "DriverConnection",
    "AdapterCapabilities",
    "RowSet",
    "SQLiteConnection",
    "PostgresConnection",
]
