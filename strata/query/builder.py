"""
Strata Statement Builder — filter trees and query descriptions to parameterized SQL.

Pure translation: no I/O, deterministic for a given input. Every value
is bound as a ``?`` placeholder; identifiers are validated and quoted.

Usage:
    from strata.query import Op, QueryDescription, StatementBuilder

    builder = StatementBuilder("sqlite")
    sql, params = builder.select("users", QueryDescription(
        where={"active": True, "or": [{"role": "admin"}, {"age": {Op.GTE: 18}}]},
        order_by={"name": "asc"},
        limit=10,
    ))
    # sql = 'SELECT * FROM "users" WHERE "active" = ? AND ("role" = ? OR "age" >= ?)
    #        ORDER BY "name" ASC LIMIT ?'
    # params = [True, "admin", 18, 10]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Any,
    Collection,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from ..faults.domains import InvalidArgumentsFault
from .operators import (
    LOGICAL_KEYS,
    Op,
    In,
    Equal,
    is_sequence_value,
    quote_identifier,
    resolve_operator,
)


__all__ = [
    "QueryDescription",
    "StatementBuilder",
    "FilterTree",
    "Fragment",
]

FilterTree = Mapping[Any, Any]
Fragment = Tuple[str, List[Any]]

_DIRECTIONS = {"asc": "ASC", "desc": "DESC"}
_QUERY_KEYS = ("where", "order_by", "limit", "offset", "columns")


def _validate_count(name: str, value: Any) -> None:
    if value is None:
        return
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise InvalidArgumentsFault(f"{name} must be a non-negative integer, got {value!r}")


@dataclass
class QueryDescription:
    """
    Structured description of a SELECT.

    Attributes:
        where: FilterTree restricting the rows (empty = all rows)
        order_by: column → "asc"/"desc", applied in insertion order
        limit: maximum number of rows
        offset: number of rows to skip
        columns: subset of columns to select (None = all)
    """

    where: FilterTree = field(default_factory=dict)
    order_by: Mapping[str, str] = field(default_factory=dict)
    limit: Optional[int] = None
    offset: Optional[int] = None
    columns: Optional[Sequence[str]] = None

    @classmethod
    def coerce(cls, query: Any) -> QueryDescription:
        """Accept None, a QueryDescription, or a plain dict with the same keys."""
        if query is None:
            return cls()
        if isinstance(query, QueryDescription):
            return query
        if not isinstance(query, Mapping):
            raise InvalidArgumentsFault(
                f"query must be a QueryDescription or mapping, got {type(query).__name__}"
            )
        return cls.from_dict(query)

    @classmethod
    def from_dict(cls, query: Mapping[str, Any]) -> QueryDescription:
        unknown = [key for key in query if key not in _QUERY_KEYS]
        if unknown:
            raise InvalidArgumentsFault(
                f"unknown query keys {unknown}; expected some of {list(_QUERY_KEYS)}"
            )
        return cls(
            where=query.get("where") or {},
            order_by=query.get("order_by") or {},
            limit=query.get("limit"),
            offset=query.get("offset"),
            columns=query.get("columns"),
        )

    def validate(self) -> None:
        """Check pagination and ordering before any SQL is generated."""
        _validate_count("limit", self.limit)
        _validate_count("offset", self.offset)
        if not isinstance(self.order_by, Mapping):
            raise InvalidArgumentsFault("order_by must be a mapping of column to direction")
        for column, direction in self.order_by.items():
            if not isinstance(direction, str) or direction.lower() not in _DIRECTIONS:
                raise InvalidArgumentsFault(
                    f"invalid direction {direction!r} for '{column}'; use 'asc' or 'desc'"
                )
        if self.columns is not None:
            if isinstance(self.columns, str) or not isinstance(self.columns, Sequence):
                raise InvalidArgumentsFault("columns must be a sequence of column names")
            if not self.columns:
                raise InvalidArgumentsFault("columns must not be empty when given")


class StatementBuilder:
    """
    Translates query descriptions into ``(sql, params)`` pairs.

    ``allowed`` arguments restrict column references to a known set
    (the entity's columns); ``None`` accepts any valid identifier.
    """

    def __init__(self, dialect: str = "sqlite"):
        self.dialect = dialect

    # ── WHERE ────────────────────────────────────────────────────────

    def where(
        self,
        tree: Optional[FilterTree],
        allowed: Optional[Collection[str]] = None,
    ) -> Fragment:
        """
        Render a FilterTree as a WHERE body (without the keyword).

        Top-level entries are joined with AND in mapping order; logical
        groups are always parenthesized. An empty tree renders ``""``.
        """
        if tree is None:
            return "", []
        parts, params = self._render_tree(tree, allowed)
        return " AND ".join(parts), params

    def _render_tree(
        self, tree: Any, allowed: Optional[Collection[str]]
    ) -> Tuple[List[str], List[Any]]:
        if not isinstance(tree, Mapping):
            raise InvalidArgumentsFault(
                f"filter must be a mapping, got {type(tree).__name__}"
            )
        parts: List[str] = []
        params: List[Any] = []
        for key, value in tree.items():
            if key in LOGICAL_KEYS:
                clause, clause_params = self._render_logical(LOGICAL_KEYS[key], value, allowed)
            elif isinstance(key, Op):
                raise InvalidArgumentsFault(
                    f"operator {key!r} must be nested under a column, e.g. {{'age': {{{key!r}: ...}}}}"
                )
            else:
                clause, clause_params = self._render_field(key, value, allowed)
            if clause:
                parts.append(clause)
                params.extend(clause_params)
        return parts, params

    def _render_logical(
        self, connector: str, branches: Any, allowed: Optional[Collection[str]]
    ) -> Fragment:
        if not isinstance(branches, (list, tuple)) or not branches:
            raise InvalidArgumentsFault(
                f"'{connector.lower()}' expects a non-empty list of filters"
            )
        rendered: List[str] = []
        params: List[Any] = []
        for branch in branches:
            parts, branch_params = self._render_tree(branch, allowed)
            if not parts:
                continue
            if len(parts) == 1:
                rendered.append(parts[0])
            else:
                rendered.append("(" + " AND ".join(parts) + ")")
            params.extend(branch_params)
        if not rendered:
            return "", []
        return "(" + f" {connector} ".join(rendered) + ")", params

    def _render_field(
        self, column: Any, value: Any, allowed: Optional[Collection[str]]
    ) -> Fragment:
        self._check_column(column, allowed)
        if isinstance(value, Mapping):
            if not value:
                raise InvalidArgumentsFault(f"empty operator mapping for '{column}'")
            parts: List[str] = []
            params: List[Any] = []
            for op, operand in value.items():
                if op in (Op.AND, Op.OR):
                    raise InvalidArgumentsFault(
                        f"logical operator {op!r} cannot be used as a comparison on '{column}'"
                    )
                clause, clause_params = resolve_operator(op, column, operand).as_sql(self.dialect)
                parts.append(clause)
                params.extend(clause_params)
            if len(parts) == 1:
                return parts[0], params
            return "(" + " AND ".join(parts) + ")", params
        if is_sequence_value(value):
            return In(column, value).as_sql(self.dialect)
        return Equal(column, value).as_sql(self.dialect)

    @staticmethod
    def _check_column(column: Any, allowed: Optional[Collection[str]]) -> str:
        quoted = quote_identifier(column)
        if allowed is not None and column not in allowed:
            raise InvalidArgumentsFault(f"unknown column '{column}'")
        return quoted

    # ── Statements ───────────────────────────────────────────────────

    def select(
        self,
        table: str,
        query: Any = None,
        allowed: Optional[Collection[str]] = None,
        extra: Sequence[Fragment] = (),
    ) -> Fragment:
        """
        Build a SELECT from a QueryDescription (or dict).

        ``extra`` fragments are ANDed after the filter tree.
        """
        query = QueryDescription.coerce(query)
        query.validate()

        if query.columns:
            cols = ", ".join(self._check_column(c, allowed) for c in query.columns)
        else:
            cols = "*"
        sql_parts = [f"SELECT {cols} FROM {quote_identifier(table)}"]

        where_sql, params = self._where_with_extra(query.where, allowed, extra)
        if where_sql:
            sql_parts.append(f"WHERE {where_sql}")

        if query.order_by:
            ordering = ", ".join(
                f"{self._check_column(column, allowed)} {_DIRECTIONS[direction.lower()]}"
                for column, direction in query.order_by.items()
            )
            sql_parts.append(f"ORDER BY {ordering}")

        if query.limit is not None:
            sql_parts.append("LIMIT ?")
            params.append(query.limit)
        if query.offset is not None:
            if query.limit is None and self.dialect == "sqlite":
                # SQLite only accepts OFFSET after a LIMIT
                sql_parts.append("LIMIT -1")
            sql_parts.append("OFFSET ?")
            params.append(query.offset)

        return " ".join(sql_parts), params

    def count(
        self,
        table: str,
        where: Optional[FilterTree] = None,
        allowed: Optional[Collection[str]] = None,
        extra: Sequence[Fragment] = (),
    ) -> Fragment:
        """Build a ``SELECT COUNT(*)`` restricted by a FilterTree."""
        sql = f'SELECT COUNT(*) AS "count" FROM {quote_identifier(table)}'
        where_sql, params = self._where_with_extra(where, allowed, extra)
        if where_sql:
            sql += f" WHERE {where_sql}"
        return sql, params

    def insert(
        self,
        table: str,
        attributes: Mapping[str, Any],
        allowed: Optional[Collection[str]] = None,
        returning: bool = True,
    ) -> Fragment:
        """Build a single-row INSERT."""
        return self.insert_many(table, [attributes], allowed, returning)

    def insert_many(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        allowed: Optional[Collection[str]] = None,
        returning: bool = True,
    ) -> Fragment:
        """
        Build one multi-row INSERT.

        Every row must provide the same set of columns; values are bound
        row by row in the column order of the first row.
        """
        if not rows:
            raise InvalidArgumentsFault("no rows to insert")
        columns = self._attribute_columns(rows[0], allowed)
        expected = set(columns)
        params: List[Any] = []
        groups: List[str] = []
        row_placeholders = "(" + ", ".join("?" for _ in columns) + ")"
        for index, row in enumerate(rows):
            if not isinstance(row, Mapping) or set(row.keys()) != expected:
                raise InvalidArgumentsFault(
                    f"row {index} does not have the same columns as row 0 ({columns})"
                )
            params.extend(row[c] for c in columns)
            groups.append(row_placeholders)

        col_names = ", ".join(quote_identifier(c) for c in columns)
        sql = f"INSERT INTO {quote_identifier(table)} ({col_names}) VALUES {', '.join(groups)}"
        if returning:
            sql += " RETURNING *"
        return sql, params

    def update(
        self,
        table: str,
        where: Optional[FilterTree],
        attributes: Mapping[str, Any],
        allowed: Optional[Collection[str]] = None,
    ) -> Fragment:
        """Build an UPDATE restricted by a FilterTree."""
        columns = self._attribute_columns(attributes, allowed)
        set_parts = ", ".join(f"{quote_identifier(c)} = ?" for c in columns)
        params = [attributes[c] for c in columns]
        sql = f"UPDATE {quote_identifier(table)} SET {set_parts}"
        where_sql, where_params = self.where(where, allowed)
        if where_sql:
            sql += f" WHERE {where_sql}"
            params.extend(where_params)
        return sql, params

    def delete(
        self,
        table: str,
        where: Optional[FilterTree],
        allowed: Optional[Collection[str]] = None,
    ) -> Fragment:
        """Build a DELETE restricted by a FilterTree."""
        sql = f"DELETE FROM {quote_identifier(table)}"
        where_sql, params = self.where(where, allowed)
        if where_sql:
            sql += f" WHERE {where_sql}"
        return sql, params

    # ── Full-text search ─────────────────────────────────────────────

    def search_predicate(self, term: Any, columns: Sequence[str]) -> Fragment:
        """
        Build an OR of per-column full-text predicates for ``term``.

        PostgreSQL uses ``to_tsvector``/``plainto_tsquery``; other
        dialects fall back to a case-insensitive substring match.
        """
        if not isinstance(term, str) or not term.strip():
            raise InvalidArgumentsFault("search term must be a non-empty string")
        if not columns:
            raise InvalidArgumentsFault("no columns configured for search")
        term = term.strip()

        parts: List[str] = []
        params: List[Any] = []
        for column in columns:
            quoted = quote_identifier(column)
            if self.dialect == "postgresql":
                parts.append(f"to_tsvector('simple', {quoted}) @@ plainto_tsquery('simple', ?)")
                params.append(term)
            else:
                parts.append(f"LOWER({quoted}) LIKE LOWER(?) ESCAPE '\\'")
                params.append(f"%{_escape_like(term)}%")
        if len(parts) == 1:
            return parts[0], params
        return "(" + " OR ".join(parts) + ")", params

    # ── Helpers ──────────────────────────────────────────────────────

    def _where_with_extra(
        self,
        where: Optional[FilterTree],
        allowed: Optional[Collection[str]],
        extra: Sequence[Fragment],
    ) -> Fragment:
        where_sql, params = self.where(where, allowed)
        parts = [where_sql] if where_sql else []
        for extra_sql, extra_params in extra:
            parts.append(extra_sql)
            params.extend(extra_params)
        return " AND ".join(parts), params

    def _attribute_columns(
        self, attributes: Any, allowed: Optional[Collection[str]]
    ) -> List[str]:
        if not isinstance(attributes, Mapping) or not attributes:
            raise InvalidArgumentsFault("attributes must be a non-empty mapping")
        columns = list(attributes.keys())
        for column in columns:
            self._check_column(column, allowed)
        return columns


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
