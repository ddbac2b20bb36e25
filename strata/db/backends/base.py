"""
Strata DB Backend — Base Driver Connection Interface.

Every backend wraps exactly one live database session. The connection
pool opens these, leases them to clients, and closes them on shutdown.

This interface abstracts differences between SQLite and PostgreSQL:
- Parameter placeholder style (?, $1)
- Transaction and savepoint statements
- RETURNING clause support
- Affected-row reporting
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger("strata.db.backends")

__all__ = [
    "DriverConnection",
    "AdapterCapabilities",
    "RowSet",
    "validate_savepoint_name",
    "SAVEPOINT_NAME_RE",
    "mask_url",
]

# Savepoint names are interpolated, so only plain identifiers are allowed
SAVEPOINT_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


@dataclass
class AdapterCapabilities:
    """Describes what a specific backend supports."""

    supports_returning: bool = False
    supports_ilike: bool = False
    supports_fulltext: bool = False
    param_style: str = "qmark"  # qmark (?) | numeric ($1)
    name: str = "base"


@dataclass
class RowSet:
    """Result of a single statement."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = -1
    last_row_id: Optional[int] = None

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


def validate_savepoint_name(name: str) -> str:
    if not SAVEPOINT_NAME_RE.match(name):
        raise ValueError(f"Invalid savepoint name: {name!r}")
    return name


class DriverConnection(ABC):
    """
    Abstract driver connection.

    All statements use ``?`` placeholders; backends with another param
    style translate in ``adapt_sql``.
    """

    capabilities: AdapterCapabilities = AdapterCapabilities()

    def __init__(self) -> None:
        self._broken = False

    @classmethod
    @abstractmethod
    async def open(cls, url: str, **options: Any) -> DriverConnection:
        """Open a new connection to the database at ``url``."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
        ...

    @abstractmethod
    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> RowSet:
        """Execute a statement and return its rows and affected-row count."""
        ...

    # ── Transaction management ───────────────────────────────────────

    async def begin(self) -> None:
        await self.execute("BEGIN")

    async def commit(self) -> None:
        await self.execute("COMMIT")

    async def rollback(self) -> None:
        await self.execute("ROLLBACK")

    async def savepoint(self, name: str) -> None:
        await self.execute(f'SAVEPOINT "{validate_savepoint_name(name)}"')

    async def release_savepoint(self, name: str) -> None:
        await self.execute(f'RELEASE SAVEPOINT "{validate_savepoint_name(name)}"')

    async def rollback_to_savepoint(self, name: str) -> None:
        await self.execute(f'ROLLBACK TO SAVEPOINT "{validate_savepoint_name(name)}"')

    # ── SQL adaptation ───────────────────────────────────────────────

    def adapt_sql(self, sql: str) -> str:
        """
        Adapt SQL placeholders from qmark (?) to the backend's param style.

        Override this in backends that use a different param style.
        """
        return sql

    def mark_broken(self) -> None:
        self._broken = True

    @property
    def is_broken(self) -> bool:
        """True once the driver reported the session as unusable."""
        return self._broken

    @property
    def dialect(self) -> str:
        return self.capabilities.name


def mask_url(url: str) -> str:
    """Mask password in URL for logging."""
    if "@" in url:
        pre, post = url.split("@", 1)
        scheme_sep = pre.find("://")
        creds = pre[scheme_sep + 3:] if scheme_sep >= 0 else pre
        if ":" in creds:
            return f"{pre.rsplit(':', 1)[0]}:***@{post}"
    return url
