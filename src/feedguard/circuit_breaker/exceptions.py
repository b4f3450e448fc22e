"""Circuit breaker exceptions.

Runtime failures of protected operations never surface from
``CircuitBreaker.execute``. The exceptions here signal setup mistakes:
  - An invalid breaker name or configuration value.
  - Two breakers registered under the same name.
"""


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class BreakerConfigError(CircuitBreakerError, ValueError):
    """Raised when a breaker is constructed with invalid configuration."""


class DuplicateBreakerError(BreakerConfigError):
    """Raised when a registry already holds a breaker with the same name.

    Attributes:
        breaker_name: Name that is already registered.
    """

    def __init__(self, breaker_name: str) -> None:
        """Initialize a duplicate-registration exception payload.

        Args:
            breaker_name: Name that collided with an existing registration.
        """
        self.breaker_name = breaker_name
        super().__init__(f"duplicate_breaker: {breaker_name}")
