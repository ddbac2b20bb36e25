"""
Strata Searchable Repository — generic repository plus full-text search.

    posts = SearchableRepository(entity, client, search_columns=["title", "body"])
    hits = await posts.search("async python", where={"published": True}, limit=20)

On PostgreSQL each column is matched with ``to_tsvector``/``plainto_tsquery``;
elsewhere with a case-insensitive substring match. An empty term is
rejected rather than turned into a full scan.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from ..db.client import Client
from ..faults.domains import InvalidArgumentsFault
from ..query.builder import FilterTree, QueryDescription
from .base import Entity, Repository, RepositoryCore

__all__ = ["Searchable", "FullTextSearch", "SearchableRepository"]


class Searchable(Protocol):
    async def search(
        self,
        term: str,
        *,
        columns: Optional[Sequence[str]] = None,
        where: Optional[FilterTree] = None,
        order_by: Optional[Mapping[str, str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...


class FullTextSearch:
    """Search capability over a repository core."""

    def __init__(self, core: RepositoryCore, columns: Sequence[str] = ()):
        self._core = core
        self.columns = self._check_columns(columns) if columns else ()

    def _check_columns(self, columns: Sequence[str]) -> tuple:
        if isinstance(columns, str):
            columns = [columns]
        unknown = [c for c in columns if c not in self._core.entity.columns]
        if unknown:
            raise InvalidArgumentsFault(
                f"search columns {unknown} are not columns of '{self._core.entity.table}'"
            )
        return tuple(columns)

    async def search(
        self,
        term: str,
        *,
        columns: Optional[Sequence[str]] = None,
        where: Optional[FilterTree] = None,
        order_by: Optional[Mapping[str, str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        if not isinstance(term, str) or not term.strip():
            raise InvalidArgumentsFault("search term must not be empty")
        search_columns = self._check_columns(columns) if columns else self.columns
        if not search_columns:
            raise InvalidArgumentsFault(
                f"no search columns configured for '{self._core.entity.table}'"
            )
        predicate = self._core.builder.search_predicate(term, search_columns)
        query = QueryDescription(
            where=where or {},
            order_by=order_by or {},
            limit=limit,
            offset=offset,
        )
        return await self._core.select(query, extra=[predicate])


class SearchableRepository(Repository):
    """Repository with a ``FullTextSearch`` capability."""

    def __init__(self, entity: Entity, client: Client, search_columns: Sequence[str] = ()):
        super().__init__(entity, client)
        self._search = FullTextSearch(self._core, search_columns)

    def _attach(self, core: RepositoryCore) -> None:
        super()._attach(core)
        self._search = FullTextSearch(core, self._search.columns)

    async def search(
        self,
        term: str,
        *,
        columns: Optional[Sequence[str]] = None,
        where: Optional[FilterTree] = None,
        order_by: Optional[Mapping[str, str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Rows where any search column matches ``term``, ANDed with ``where``."""
        return await self._search.search(
            term, columns=columns, where=where, order_by=order_by, limit=limit, offset=offset
        )

    @property
    def search_columns(self) -> tuple:
        return self._search.columns
