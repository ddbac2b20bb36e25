"""
Strata Generic Repository — CRUD over a named table without per-entity SQL.

A repository binds an ``Entity`` (table + columns) to a ``Client``. Every
call runs through that client, so repository calls made inside an open
transaction take part in it:

    users = Repository(Entity("users", ["id", "name", "email"]), client)

    await client.begin_transaction()
    alice = await users.create({"name": "Alice", "email": "a@example.com"})
    await users.update({"id": alice["id"]}, {"email": "alice@example.com"})
    await client.commit()

    rows = await users.find({"where": {"name": {Op.ILIKE: "a%"}}, "limit": 10})

``bind(client)`` returns the same repository attached to another scope.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..db.backends.base import RowSet
from ..db.client import Client
from ..faults.domains import InvalidArgumentsFault, QueryFault
from ..query.builder import Fragment, FilterTree, QueryDescription, StatementBuilder
from ..query.operators import quote_identifier

logger = logging.getLogger("strata.repository")

__all__ = ["Entity", "Repository", "RepositoryCore"]


@dataclass(frozen=True)
class Entity:
    """Table name, ordered column names and primary key of a persisted shape."""

    table: str
    columns: Tuple[str, ...]
    primary_key: str = "id"

    def __post_init__(self) -> None:
        quote_identifier(self.table)
        if isinstance(self.columns, str) or not self.columns:
            raise InvalidArgumentsFault(f"entity '{self.table}' needs a non-empty list of columns")
        object.__setattr__(self, "columns", tuple(self.columns))
        for column in self.columns:
            quote_identifier(column)
        if len(set(self.columns)) != len(self.columns):
            raise InvalidArgumentsFault(f"entity '{self.table}' declares duplicate columns")
        if self.primary_key not in self.columns:
            raise InvalidArgumentsFault(
                f"primary key '{self.primary_key}' is not a column of '{self.table}'"
            )

    def shape(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        """Project a driver row onto the entity's columns, in declared order."""
        return {column: row[column] for column in self.columns if column in row}


class RepositoryCore:
    """Entity + client + statement builder shared by a repository and its capabilities."""

    def __init__(self, entity: Entity, client: Client):
        self.entity = entity
        self.client = client
        self.builder = StatementBuilder(client.dialect)

    async def run(self, sql: str, params: Sequence[Any]) -> RowSet:
        return await self.client.execute(sql, params)

    async def select(
        self, query: Any = None, extra: Sequence[Fragment] = ()
    ) -> List[Dict[str, Any]]:
        sql, params = self.builder.select(
            self.entity.table, query, self.entity.columns, extra
        )
        result = await self.run(sql, params)
        return [self.entity.shape(row) for row in result.rows]

    async def insert(self, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Insert ``rows`` in one statement and return them as stored."""
        if not self.client.capabilities.supports_returning:
            raise QueryFault(
                operation="insert",
                reason=f"{self.client.dialect} driver does not support RETURNING",
            )
        sql, params = self.builder.insert_many(
            self.entity.table, rows, self.entity.columns, returning=True
        )
        result = await self.run(sql, params)
        return [self.entity.shape(row) for row in result.rows]


class Repository:
    """
    Generic repository: ``create``, ``find``, ``update``, ``delete``.

    Filters are FilterTrees; queries are ``QueryDescription`` objects or
    plain dicts with ``where``, ``order_by``, ``limit``, ``offset`` and
    ``columns`` keys.
    """

    def __init__(self, entity: Entity, client: Client):
        self._core = RepositoryCore(entity, client)

    def bind(self, client: Client) -> Repository:
        """Return a copy of this repository that runs through ``client``."""
        clone = copy.copy(self)
        clone._attach(RepositoryCore(self._core.entity, client))
        return clone

    def _attach(self, core: RepositoryCore) -> None:
        self._core = core

    # ── CRUD ─────────────────────────────────────────────────────────

    async def create(self, attributes: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it as stored (defaults and keys filled in)."""
        rows = await self._core.insert([attributes])
        logger.debug(f"Created row in {self.entity.table}")
        return rows[0] if rows else dict(attributes)

    async def find(self, query: Any = None) -> List[Dict[str, Any]]:
        """Select rows; an empty match is ``[]``."""
        return await self._core.select(query)

    async def find_one(self, where: Optional[FilterTree] = None) -> Optional[Dict[str, Any]]:
        """Return the first matching row, or None."""
        rows = await self._core.select(QueryDescription(where=where or {}, limit=1))
        return rows[0] if rows else None

    async def find_by_id(self, id: Any) -> Optional[Dict[str, Any]]:
        return await self.find_one({self.entity.primary_key: id})

    async def count(self, where: Optional[FilterTree] = None) -> int:
        sql, params = self._core.builder.count(self.entity.table, where, self.entity.columns)
        row = (await self._core.run(sql, params)).first()
        return int(row["count"]) if row else 0

    async def exists(self, where: Optional[FilterTree] = None) -> bool:
        return await self.find_one(where) is not None

    async def update(self, where: Optional[FilterTree], attributes: Mapping[str, Any]) -> int:
        """Update matching rows; returns the affected row count (0 is not an error)."""
        sql, params = self._core.builder.update(
            self.entity.table, where, attributes, self.entity.columns
        )
        result = await self._core.run(sql, params)
        affected = max(result.rowcount, 0)
        logger.debug(f"Updated {affected} row(s) in {self.entity.table}")
        return affected

    async def delete(self, where: Optional[FilterTree]) -> int:
        """Delete matching rows; returns the affected row count (0 is not an error)."""
        sql, params = self._core.builder.delete(self.entity.table, where, self.entity.columns)
        result = await self._core.run(sql, params)
        affected = max(result.rowcount, 0)
        logger.debug(f"Deleted {affected} row(s) from {self.entity.table}")
        return affected

    # ── Properties ───────────────────────────────────────────────────

    @property
    def entity(self) -> Entity:
        return self._core.entity

    @property
    def client(self) -> Client:
        return self._core.client

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.entity.table!r}>"
