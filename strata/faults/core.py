"""
Strata Faults - base fault type, domains and severities.

Every error the data-access layer raises on purpose is a ``Fault``: it
carries a stable code that callers can branch on, the domain it came from
(pool, transaction, query, ...), and whether retrying the same call can
succeed. Driver exceptions are chained as ``__cause__``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """How loudly a fault should be logged."""
    INFO = "info"
    WARN = "warn"       # caller input problems
    ERROR = "error"     # failed database work
    FATAL = "fatal"     # misconfiguration; nothing will work until fixed


class FaultDomain:
    """
    Area of the data-access layer a fault belongs to.

    Domains compare by name, and equal to their plain-string name, so
    ``fault.domain == "pool"`` works in handlers and log filters.
    Applications may create their own domains; unknown domains get
    ``ERROR`` severity and are not retryable.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain({self.name!r})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return self.name == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


FaultDomain.CONFIG = FaultDomain("config", "Settings that cannot produce a working database")
FaultDomain.POOL = FaultDomain("pool", "Leasing, opening and closing connections")
FaultDomain.TRANSACTION = FaultDomain("transaction", "Begin/commit/savepoint called out of order")
FaultDomain.QUERY = FaultDomain("query", "A statement the driver failed or timed out")
FaultDomain.VALIDATION = FaultDomain("validation", "Filter trees and arguments rejected before any I/O")


# Pool faults are the only ones where the same call can succeed later
DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.POOL: {"severity": Severity.ERROR, "retryable": True},
    FaultDomain.TRANSACTION: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.QUERY: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.VALIDATION: {"severity": Severity.WARN, "retryable": False},
}

_FALLBACK_DEFAULTS = {"severity": Severity.ERROR, "retryable": False}


# ============================================================================
# Fault
# ============================================================================

class Fault(Exception):
    """
    Structured error raised by pools, clients, builders and repositories.

    Subclasses usually pin ``code`` and ``domain`` as class attributes and
    only pass a message; the constructor falls back to those attributes.

    Attributes:
        code: Stable identifier such as ``"POOL_EXHAUSTED"``
        message: Human-readable summary
        domain: ``FaultDomain`` the fault belongs to
        severity: Defaults from the domain
        retryable: Defaults from the domain
        metadata: Context for logs (timeouts, sizes, truncated SQL).
            Keys starting with ``_`` stay out of ``to_dict()``.

    Example:
        raise Fault(
            code="POOL_EXHAUSTED",
            message="No connection available within 5.0s",
            domain=FaultDomain.POOL,
            metadata={"timeout": 5.0},
        )
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        code = code if code is not None else getattr(type(self), "code", None)
        message = message if message is not None else getattr(type(self), "message", None)
        domain = domain if domain is not None else getattr(type(self), "domain", None)
        if code is None or message is None or domain is None:
            raise TypeError(f"{type(self).__name__} needs a code, a message and a domain")

        super().__init__(message)
        self.code = code
        self.message = message
        self.domain = domain

        defaults = DOMAIN_DEFAULTS.get(domain, _FALLBACK_DEFAULTS)
        self.severity = severity or defaults["severity"]
        self.retryable = defaults["retryable"] if retryable is None else retryable
        self.metadata = dict(metadata) if metadata else {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, domain={self.domain}, retryable={self.retryable})"

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form for structured logging."""
        public = {k: v for k, v in self.metadata.items() if not k.startswith("_")}
        return {
            "code": self.code,
            "message": self.message,
            "domain": str(self.domain),
            "severity": self.severity.value,
            "retryable": self.retryable,
            "metadata": public,
        }
