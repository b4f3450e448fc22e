"""Explicit name-to-breaker bookkeeping for status surfaces."""

from collections.abc import Iterator, Sequence
from typing import Any

from feedguard.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from feedguard.circuit_breaker.exceptions import (
    BreakerConfigError,
    DuplicateBreakerError,
)
from feedguard.circuit_breaker.metrics import BreakerListener
from feedguard.circuit_breaker.state import BreakerSnapshot, CircuitState


class BreakerRegistry:
    """Registry of independent breakers keyed by integration name.

    A registry is an ordinary object owned by the application; nothing is
    registered implicitly at import time. Iteration follows registration
    order so status panels render in a stable order.
    """

    def __init__(self) -> None:
        self._breakers: dict[str, CircuitBreaker[Any]] = {}

    def __len__(self) -> int:
        return len(self._breakers)

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    def __iter__(self) -> Iterator[CircuitBreaker[Any]]:
        return iter(tuple(self._breakers.values()))

    def register(self, breaker: CircuitBreaker[Any]) -> None:
        """Add ``breaker``; its name must not already be registered."""
        if breaker.name in self._breakers:
            raise DuplicateBreakerError(breaker.name)
        self._breakers[breaker.name] = breaker

    def unregister(self, name: str) -> CircuitBreaker[Any] | None:
        """Remove and return the breaker registered under ``name``."""
        return self._breakers.pop(name, None)

    def get(self, name: str) -> CircuitBreaker[Any] | None:
        return self._breakers.get(name)

    def get_or_create(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> CircuitBreaker[Any]:
        """Return the breaker for ``name``, creating and registering it if new.

        ``config`` and ``listeners`` only apply when a breaker is created.
        """
        existing = self._breakers.get(name)
        if existing is not None:
            return existing
        breaker: CircuitBreaker[Any] = CircuitBreaker(
            name, config=config, listeners=listeners
        )
        self.register(breaker)
        return breaker

    def names(self) -> tuple[str, ...]:
        return tuple(self._breakers)

    def statuses(self) -> dict[str, str]:
        """Map each breaker name to its display status line."""
        return {name: breaker.get_status() for name, breaker in self._breakers.items()}

    def snapshots(self) -> tuple[BreakerSnapshot, ...]:
        return tuple(breaker.snapshot() for breaker in self._breakers.values())

    def degraded(self) -> tuple[str, ...]:
        """Return names of breakers that are not currently ``CLOSED``."""
        return tuple(
            name
            for name, breaker in self._breakers.items()
            if breaker.state != CircuitState.CLOSED
        )

    def is_on_cooldown(self, name: str) -> bool:
        """Return whether ``name`` is short-circuiting calls; unknown is False."""
        breaker = self._breakers.get(name)
        if breaker is None:
            return False
        return breaker.is_on_cooldown()


def create_circuit_breaker(
    name: str,
    *,
    failure_threshold: int | None = None,
    cooldown: float | None = None,
    cache_ttl: float | None = None,
    stale_ceiling: float | None = None,
    config: CircuitBreakerConfig | None = None,
    listeners: Sequence[BreakerListener] | None = None,
    registry: BreakerRegistry | None = None,
) -> CircuitBreaker[Any]:
    """Build a breaker for one integration and optionally register it.

    Pass either a ready ``config`` (e.g. ``settings.breaker_config(name)``) or
    individual values; omitted values take the ``CircuitBreakerConfig``
    defaults (3 failures, 30 s cooldown, no result cache).

    Args:
        name: Integration label, e.g. ``"UNHCR Displacement"``.
        failure_threshold: Consecutive failures that trip the breaker.
        cooldown: Seconds to short-circuit calls once tripped.
        cache_ttl: Seconds to serve a successful result without re-fetching.
        stale_ceiling: Maximum age in seconds of a cached result served in
            place of the fallback.
        config: Complete breaker configuration.
        listeners: Optional listener hooks for breaker events.
        registry: Registry to add the new breaker to.

    Raises:
        BreakerConfigError: For a blank name, invalid values, ``config`` mixed
            with individual values, or a name already present in ``registry``.
    """
    options = {
        "failure_threshold": failure_threshold,
        "cooldown": cooldown,
        "cache_ttl": cache_ttl,
        "stale_ceiling": stale_ceiling,
    }
    given = {key: value for key, value in options.items() if value is not None}
    if config is None:
        config = CircuitBreakerConfig(**given)
    elif given:
        raise BreakerConfigError(
            f"pass either config or individual values, not both: {sorted(given)}"
        )
    breaker: CircuitBreaker[Any] = CircuitBreaker(
        name, config=config, listeners=listeners
    )
    if registry is not None:
        registry.register(breaker)
    return breaker
