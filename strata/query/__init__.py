"""
Strata Query — filter-tree language and parameterized statement builder.
"""

from .operators import (
    Op,
    Operator,
    LOGICAL_KEYS,
    operator_registry,
    quote_identifier,
    resolve_operator,
)
from .builder import (
    FilterTree,
    QueryDescription,
    StatementBuilder,
)

__all__ = [
    "Op",
    "Operator",
    "LOGICAL_KEYS",
    "operator_registry",
    "quote_identifier",
    "resolve_operator",
    "FilterTree",
    "QueryDescription",
    "StatementBuilder",
]
