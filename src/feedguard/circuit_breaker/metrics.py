"""Observability hooks for circuit breakers."""

from typing import Protocol

from feedguard.circuit_breaker.state import CircuitState
from feedguard.logging import AnyLogger, get_logger, log_info, log_warning


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        ``on_state_change(OPEN -> HALF_OPEN)`` is emitted once per probe
        attempt. Exceptions raised by listeners are swallowed by the breaker.
    """

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    async def on_call_rejected(self, name: str) -> None:
        """Handle a call short-circuited while the circuit is open."""

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    async def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """Handle failed protected call completion."""


class LoggingBreakerListener:
    """Listener that writes breaker events to a structured logger."""

    def __init__(
        self,
        logger: AnyLogger | None = None,
        *,
        log_successes: bool = False,
    ) -> None:
        """Create a logging listener.

        Args:
            logger: Structured or stdlib logger. Defaults to a structlog logger
                named ``feedguard.circuit_breaker``.
            log_successes: Emit an event for every successful call.
        """
        if logger is None:
            logger = get_logger("feedguard.circuit_breaker")
        self._logger = logger
        self._log_successes = log_successes

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Log a state transition; tripping open is a warning."""
        if new == CircuitState.OPEN:
            log_warning(
                self._logger,
                "circuit_breaker.opened",
                breaker=name,
                from_state=str(old),
            )
            return
        log_info(
            self._logger,
            "circuit_breaker.state_changed",
            breaker=name,
            from_state=str(old),
            to_state=str(new),
        )

    async def on_call_rejected(self, name: str) -> None:
        """Log a short-circuited call."""
        log_info(self._logger, "circuit_breaker.call_rejected", breaker=name)

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Log a successful call when enabled."""
        if not self._log_successes:
            return
        log_info(
            self._logger,
            "circuit_breaker.call_succeeded",
            breaker=name,
            elapsed_seconds=round(elapsed, 3),
        )

    async def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """Log a failed call with its error type and message."""
        log_warning(
            self._logger,
            "circuit_breaker.call_failed",
            breaker=name,
            error_type=exc.__class__.__name__,
            error_message=str(exc),
            elapsed_seconds=round(elapsed, 3),
        )
