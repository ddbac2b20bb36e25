"""
Strata Faults - typed fault signals for the data-access layer.

Errors are data: every fault carries a stable code, a domain, a
severity, retry semantics and diagnostic metadata.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain enumeration
- Severity: Severity levels
- Concrete faults for validation, pool, transaction and query errors
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
)

from .domains import (
    ConfigInvalidFault,
    InvalidArgumentsFault,
    PoolFault,
    PoolExhaustedFault,
    PoolClosedFault,
    DatabaseConnectionFault,
    TransactionStateFault,
    AlreadyReleasedFault,
    QueryFault,
    InvalidArgumentsError,
    TransactionStateError,
    PoolExhausted,
    QueryError,
    AlreadyReleasedError,
)

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",

    # Domain faults
    "ConfigInvalidFault",
    "InvalidArgumentsFault",
    "PoolFault",
    "PoolExhaustedFault",
    "PoolClosedFault",
    "DatabaseConnectionFault",
    "TransactionStateFault",
    "AlreadyReleasedFault",
    "QueryFault",

    # Aliases
    "InvalidArgumentsError",
    "TransactionStateError",
    "PoolExhausted",
    "QueryError",
    "AlreadyReleasedError",
]
