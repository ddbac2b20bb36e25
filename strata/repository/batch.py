"""
Strata Batch Repository — generic repository plus bulk insert.

    tags = BatchRepository(Entity("tags", ["id", "name"]), client)
    created = await tags.create_many([{"name": "a"}, {"name": "b"}])

All rows go to the database in one multi-row INSERT.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Protocol, Sequence

from ..db.client import Client
from .base import Entity, Repository, RepositoryCore

logger = logging.getLogger("strata.repository")

__all__ = ["BulkInsertable", "BulkInsert", "BatchRepository"]


class BulkInsertable(Protocol):
    async def create_many(self, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        ...


class BulkInsert:
    """Bulk-insert capability over a repository core."""

    def __init__(self, core: RepositoryCore):
        self._core = core

    async def create_many(self, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        rows = list(rows)
        if not rows:
            return []
        created = await self._core.insert(rows)
        logger.debug(f"Bulk-inserted {len(created)} row(s) into {self._core.entity.table}")
        return created


class BatchRepository(Repository):
    """Repository with a ``BulkInsert`` capability."""

    def __init__(self, entity: Entity, client: Client):
        super().__init__(entity, client)
        self._bulk = BulkInsert(self._core)

    def _attach(self, core: RepositoryCore) -> None:
        super()._attach(core)
        self._bulk = BulkInsert(core)

    async def create_many(self, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Insert all rows in one round trip; returns them in input order."""
        return await self._bulk.create_many(rows)
