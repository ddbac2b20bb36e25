"""
Strata Faults - Domain-specific fault types.

Provides concrete fault classes for each domain:
- CONFIG faults
- VALIDATION faults
- POOL faults
- TRANSACTION faults
- QUERY faults
"""

from typing import Any, Optional
from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigInvalidFault(Fault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Invalid configuration for '{key}': {reason}",
            domain=FaultDomain.CONFIG,
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# VALIDATION Faults
# ============================================================================

class InvalidArgumentsFault(Fault):
    """Malformed filter, operator, ordering, pagination or attribute input."""

    def __init__(self, reason: str, **kwargs):
        super().__init__(
            code="INVALID_ARGUMENTS",
            message=f"Invalid arguments: {reason}",
            domain=FaultDomain.VALIDATION,
            metadata={"reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# POOL Faults
# ============================================================================

class PoolFault(Fault):
    """Base class for connection pool faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        retryable: bool = True,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.POOL,
            severity=severity,
            retryable=retryable,
            metadata=metadata,
        )


class PoolExhaustedFault(PoolFault):
    """No connection was released within the acquire timeout."""

    def __init__(self, size: int, timeout: Optional[float], **kwargs):
        super().__init__(
            code="POOL_EXHAUSTED",
            message=f"No connection available (pool size {size}) within {timeout}s",
            metadata={"size": size, "timeout": timeout, **kwargs.get("metadata", {})},
        )


class PoolClosedFault(PoolFault):
    """Acquire attempted on a pool that has been shut down."""

    def __init__(self, **kwargs):
        super().__init__(
            code="POOL_CLOSED",
            message="Connection pool has been shut down",
            retryable=False,
            metadata=kwargs.get("metadata", {}),
        )


class DatabaseConnectionFault(PoolFault):
    """A driver connection could not be opened."""

    def __init__(self, url: str, reason: str, **kwargs):
        super().__init__(
            code="DB_CONNECTION_FAILED",
            message=f"Database connection failed ({url}): {reason}",
            severity=Severity.FATAL,
            metadata={"url": url, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# TRANSACTION Faults
# ============================================================================

class TransactionStateFault(Fault):
    """Illegal transaction or savepoint sequencing."""

    def __init__(self, operation: str, reason: str, **kwargs):
        super().__init__(
            code="TRANSACTION_STATE",
            message=f"Cannot {operation}: {reason}",
            domain=FaultDomain.TRANSACTION,
            metadata={"operation": operation, "reason": reason, **kwargs.get("metadata", {})},
        )


class AlreadyReleasedFault(Fault):
    """Client was already handed back to the pool."""

    def __init__(self, operation: str = "release", **kwargs):
        super().__init__(
            code="ALREADY_RELEASED",
            message=f"Cannot {operation}: client has already been released",
            domain=FaultDomain.TRANSACTION,
            metadata={"operation": operation, **kwargs.get("metadata", {})},
        )


# ============================================================================
# QUERY Faults
# ============================================================================

class QueryFault(Fault):
    """Driver reported a failure executing a statement."""

    def __init__(self, operation: str, reason: str, *, sql: Optional[str] = None, **kwargs):
        metadata = {"operation": operation, "reason": reason, **kwargs.get("metadata", {})}
        if sql is not None:
            metadata["sql"] = sql[:200]
        super().__init__(
            code="QUERY_FAILED",
            message=f"Query ({operation}) failed: {reason}",
            domain=FaultDomain.QUERY,
            retryable=kwargs.get("retryable", False),
            metadata=metadata,
        )

    @property
    def sql(self) -> Optional[str]:
        return self.metadata.get("sql")


# ── Names used by callers of the data-access API ────────────────────────────
InvalidArgumentsError = InvalidArgumentsFault
TransactionStateError = TransactionStateFault
PoolExhausted = PoolExhaustedFault
QueryError = QueryFault
AlreadyReleasedError = AlreadyReleasedFault
