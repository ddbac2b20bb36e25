"""
Strata Filter Operators — closed set of comparison operators for filter trees.

Operators are members of the ``Op`` enum, never plain strings, so a
literal value can never be mistaken for an operator:

    {"status": "gt"}          # equality against the literal "gt"
    {"age": {Op.GT: 18}}      # "age" > ?

Each operator class knows its SQL form and how to bind its value(s):

    resolve_operator(Op.BETWEEN, "age", (18, 65)).as_sql()
    # ('"age" BETWEEN ? AND ?', [18, 65])
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, ClassVar, Dict, List, Tuple, Type

from ..faults.domains import InvalidArgumentsFault


__all__ = [
    "Op",
    "Operator",
    "LOGICAL_KEYS",
    "quote_identifier",
    "is_sequence_value",
    "operator_registry",
    "resolve_operator",
]


class Op(Enum):
    """Filter operators and logical combinators."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"
    NOT_IN = "not_in"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    BETWEEN = "between"
    AND = "and"
    OR = "or"

    def __repr__(self) -> str:
        return f"Op.{self.name}"


# Reserved FilterTree keys that combine nested trees
LOGICAL_KEYS: Dict[Any, str] = {
    Op.AND: "AND",
    Op.OR: "OR",
    "and": "AND",
    "or": "OR",
}

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(name: Any) -> str:
    """Validate a table/column name and return it double-quoted."""
    if not isinstance(name, str) or not _IDENT_RE.match(name):
        raise InvalidArgumentsFault(
            f"invalid identifier {name!r}; use letters, digits and underscore only"
        )
    return f'"{name}"'


def is_sequence_value(value: Any) -> bool:
    """True for list-like filter values (strings and mappings are scalars here)."""
    return isinstance(value, (list, tuple, set, frozenset))


class Operator:
    """
    Base class for filter operators.

    Each operator knows:
    - op: the ``Op`` member it implements
    - sql_operator: the SQL comparison operator
    - How to validate and bind its right-hand side
    """

    op: ClassVar[Op]
    sql_operator: ClassVar[str] = "="

    def __init__(self, column: str, value: Any):
        self.column = column
        self.value = value
        self.validate()

    def validate(self) -> None:
        if is_sequence_value(self.value) or isinstance(self.value, dict):
            raise InvalidArgumentsFault(
                f"operator {self.op!r} on '{self.column}' expects a single value, "
                f"got {type(self.value).__name__}"
            )

    def as_sql(self, dialect: str = "sqlite") -> Tuple[str, List[Any]]:
        """Return (sql_clause, params) for this operator."""
        return f"{quote_identifier(self.column)} {self.sql_operator} ?", [self.value]

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.column}={self.value!r}>"


class Equal(Operator):
    op = Op.EQ
    sql_operator = "="

    def as_sql(self, dialect: str = "sqlite") -> Tuple[str, List[Any]]:
        if self.value is None:
            return f"{quote_identifier(self.column)} IS NULL", []
        return super().as_sql(dialect)


class NotEqual(Operator):
    op = Op.NE
    sql_operator = "!="

    def as_sql(self, dialect: str = "sqlite") -> Tuple[str, List[Any]]:
        if self.value is None:
            return f"{quote_identifier(self.column)} IS NOT NULL", []
        return super().as_sql(dialect)


class GreaterThan(Operator):
    op = Op.GT
    sql_operator = ">"


class GreaterOrEqual(Operator):
    op = Op.GTE
    sql_operator = ">="


class LessThan(Operator):
    op = Op.LT
    sql_operator = "<"


class LessOrEqual(Operator):
    op = Op.LTE
    sql_operator = "<="


class Like(Operator):
    """Pattern match; the caller supplies the wildcards."""
    op = Op.LIKE
    sql_operator = "LIKE"

    def validate(self) -> None:
        if not isinstance(self.value, str):
            raise InvalidArgumentsFault(f"LIKE on '{self.column}' expects a string pattern")


class ILike(Like):
    """Case-insensitive pattern match."""
    op = Op.ILIKE

    def as_sql(self, dialect: str = "sqlite") -> Tuple[str, List[Any]]:
        column = quote_identifier(self.column)
        if dialect == "postgresql":
            return f"{column} ILIKE ?", [self.value]
        return f"LOWER({column}) LIKE LOWER(?)", [self.value]


class In(Operator):
    op = Op.IN
    sql_operator = "IN"

    def validate(self) -> None:
        if not is_sequence_value(self.value):
            raise InvalidArgumentsFault(
                f"{self.op!r} on '{self.column}' expects a list or tuple of values"
            )
        # Sets have no stable order; bind in sorted order when possible
        if isinstance(self.value, (set, frozenset)):
            try:
                self.value = sorted(self.value)
            except TypeError:
                self.value = list(self.value)

    def as_sql(self, dialect: str = "sqlite") -> Tuple[str, List[Any]]:
        if not self.value:
            return "1 = 0", []  # Always false
        placeholders = ", ".join("?" for _ in self.value)
        return f"{quote_identifier(self.column)} {self.sql_operator} ({placeholders})", list(self.value)


class NotIn(In):
    op = Op.NOT_IN
    sql_operator = "NOT IN"

    def as_sql(self, dialect: str = "sqlite") -> Tuple[str, List[Any]]:
        if not self.value:
            return "1 = 1", []  # Always true
        return super().as_sql(dialect)


class IsNull(Operator):
    """``{Op.IS_NULL: True}``; ``False`` flips to IS NOT NULL."""
    op = Op.IS_NULL

    def validate(self) -> None:
        if not isinstance(self.value, bool):
            raise InvalidArgumentsFault(f"{self.op!r} on '{self.column}' expects True or False")

    def as_sql(self, dialect: str = "sqlite") -> Tuple[str, List[Any]]:
        if self.value:
            return f"{quote_identifier(self.column)} IS NULL", []
        return f"{quote_identifier(self.column)} IS NOT NULL", []


class IsNotNull(IsNull):
    op = Op.IS_NOT_NULL

    def as_sql(self, dialect: str = "sqlite") -> Tuple[str, List[Any]]:
        if self.value:
            return f"{quote_identifier(self.column)} IS NOT NULL", []
        return f"{quote_identifier(self.column)} IS NULL", []


class Between(Operator):
    """Inclusive range: ``{Op.BETWEEN: (lo, hi)}``."""
    op = Op.BETWEEN

    def validate(self) -> None:
        if not isinstance(self.value, (list, tuple)) or len(self.value) != 2:
            raise InvalidArgumentsFault(
                f"BETWEEN on '{self.column}' expects a two-element sequence"
            )

    def as_sql(self, dialect: str = "sqlite") -> Tuple[str, List[Any]]:
        lo, hi = self.value
        return f"{quote_identifier(self.column)} BETWEEN ? AND ?", [lo, hi]


# ── Operator Registry ────────────────────────────────────────────────────────

_REGISTRY: Dict[Op, Type[Operator]] = {}


def _register_builtins() -> None:
    """Register all built-in operators."""
    for cls in [
        Equal, NotEqual, GreaterThan, GreaterOrEqual, LessThan, LessOrEqual,
        Like, ILike, In, NotIn, IsNull, IsNotNull, Between,
    ]:
        _REGISTRY[cls.op] = cls


_register_builtins()


def operator_registry() -> Dict[Op, Type[Operator]]:
    """Return a copy of the operator registry."""
    return dict(_REGISTRY)


def resolve_operator(op: Any, column: str, value: Any) -> Operator:
    """
    Resolve an operator key to an Operator instance.

    Args:
        op: An ``Op`` member
        column: The column name
        value: The comparison value

    Raises:
        InvalidArgumentsFault: If ``op`` is not a comparison operator
    """
    cls = _REGISTRY.get(op) if isinstance(op, Op) else None
    if cls is None:
        raise InvalidArgumentsFault(
            f"unknown operator {op!r} on '{column}'. "
            f"Available: {sorted(o.name for o in _REGISTRY)}"
        )
    return cls(column, value)
