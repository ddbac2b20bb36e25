"""
Strata DB Backends Package — driver connection adapters.

Provides a common connection interface and implementations for:
- SQLite (default, via aiosqlite)
- PostgreSQL (via asyncpg)
"""

from .base import DriverConnection, AdapterCapabilities, RowSet, mask_url
from .sqlite import SQLiteConnection
from .postgres import PostgresConnection

__all__ = [
    "DriverConnection",
    "AdapterCapabilities",
    "RowSet",
    "mask_url",
    "SQLiteConnection",
    "PostgresConnection",
]
