"""Async circuit breaker for unreliable third-party data feeds.

Each integration owns one ``CircuitBreaker``. Callers hand ``execute`` an
async operation and a fallback and always get a value back.

Key behavior notes:
  - Failures of the wrapped operation are recorded and absorbed; ``execute``
    returns the fallback instead of raising.
  - Half-open probing is conservative: at most one in-flight probe per
    breaker. Calls racing a probe receive the fallback without running.
  - State lives in process memory only and starts ``CLOSED`` on every start.
"""

from feedguard.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from feedguard.circuit_breaker.exceptions import (
    BreakerConfigError,
    CircuitBreakerError,
    DuplicateBreakerError,
)
from feedguard.circuit_breaker.metrics import BreakerListener, LoggingBreakerListener
from feedguard.circuit_breaker.registry import BreakerRegistry, create_circuit_breaker
from feedguard.circuit_breaker.state import (
    BreakerSnapshot,
    CircuitState,
    DataMode,
    DataState,
)

__all__ = [
    "BreakerConfigError",
    "BreakerListener",
    "BreakerRegistry",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "DataMode",
    "DataState",
    "DuplicateBreakerError",
    "LoggingBreakerListener",
    "create_circuit_breaker",
]
