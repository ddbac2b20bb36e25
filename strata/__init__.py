"""
Strata - async data-access layer

- Pool: bounded connection leasing with acquire timeouts
- Client: explicit transactions with nested savepoints
- Query: typed filter trees compiled to parameterized SQL
- Repositories: generic CRUD, full-text search and bulk insert
- Faults: structured error handling with fault domains
"""

__version__ = "0.1.0"

from .config import ConfigLoader, DatabaseConfig

from .db import (
    ConnectionPool,
    Client,
    Database,
    RowSet,
)

from .query import Op, QueryDescription, StatementBuilder

from .repository import (
    Entity,
    Repository,
    SearchableRepository,
    BatchRepository,
)

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    InvalidArgumentsError,
    TransactionStateError,
    PoolExhausted,
    QueryError,
    AlreadyReleasedError,
)

__all__ = [
    # Config
    "ConfigLoader",
    "DatabaseConfig",

    # Database
    "ConnectionPool",
    "Client",
    "Database",
    "RowSet",

    # Query
    "Op",
    "QueryDescription",
    "StatementBuilder",

    # Repositories
    "Entity",
    "Repository",
    "SearchableRepository",
    "BatchRepository",

    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "InvalidArgumentsError",
    "TransactionStateError",
    "PoolExhausted",
    "QueryError",
    "AlreadyReleasedError",
]
