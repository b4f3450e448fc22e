"""Core circuit breaker implementation."""

import math
import sys
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Generic, TypeVar

from feedguard.circuit_breaker.exceptions import BreakerConfigError
from feedguard.circuit_breaker.metrics import BreakerListener
from feedguard.circuit_breaker.state import BreakerSnapshot, CircuitState, DataState

T = TypeVar("T")

_Transition = tuple[CircuitState, CircuitState]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _ProbeGate:
    """Allow at most one in-flight half-open probe per breaker instance."""

    def __init__(self) -> None:
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())
        self._thread_lock: threading.Lock | None = None
        if not self._gil_enabled:
            self._thread_lock = threading.Lock()
        self._held = False

    def try_acquire(self) -> bool:
        if self._thread_lock is None:
            if self._held:
                return False
            self._held = True
            return True

        with self._thread_lock:
            if self._held:
                return False
            self._held = True
            return True

    def release(self) -> None:
        if self._thread_lock is None:
            self._held = False
            return
        with self._thread_lock:
            self._held = False


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures while ``CLOSED`` before opening.
        cooldown: Seconds to stay ``OPEN`` before a probe is allowed.
        cache_ttl: Seconds a successful result is served without calling the
            operation again. ``0`` disables result caching.
        stale_ceiling: Maximum age in seconds of a cached result that may still
            be served in place of the fallback when a call fails.
    """

    failure_threshold: int = 3
    cooldown: float = 30.0
    cache_ttl: float = 0.0
    stale_ceiling: float = 24 * 60 * 60.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise BreakerConfigError("failure_threshold must be >= 1")
        for field_name in ("cooldown", "cache_ttl", "stale_ceiling"):
            if not math.isfinite(getattr(self, field_name)):
                raise BreakerConfigError(f"{field_name} must be a finite number")
        if self.cooldown < 0:
            raise BreakerConfigError("cooldown must be >= 0")
        if self.cache_ttl < 0:
            raise BreakerConfigError("cache_ttl must be >= 0")
        if self.stale_ceiling < 0:
            raise BreakerConfigError("stale_ceiling must be >= 0")


@dataclass(frozen=True)
class _CacheEntry(Generic[T]):
    value: T
    fetched_at: datetime


class CircuitBreaker(Generic[T]):
    """Guard one external integration and always hand back a usable value.

    ``execute`` runs the supplied operation while the circuit is ``CLOSED``,
    short-circuits to the fallback while ``OPEN``, and lets a single probe
    through once the cooldown has elapsed. Exceptions raised by the operation
    are recorded and absorbed; they never reach the caller.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a circuit breaker for one named integration.

        Args:
            name: Human-readable integration label, e.g. ``"NWS Weather"``.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listener hooks for breaker events.

        Raises:
            BreakerConfigError: If ``name`` is missing or blank.
        """
        if not isinstance(name, str) or not name.strip():
            raise BreakerConfigError("name must be a non-empty string")
        self._name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._probe_gate = _ProbeGate()

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: datetime | None = None
        self._last_failure_at: datetime | None = None
        self._last_success_at: datetime | None = None
        self._last_error: Exception | None = None
        self._cache: _CacheEntry[T] | None = None
        self._data_state = DataState(mode="unavailable")

    def __repr__(self) -> str:
        return f"CircuitBreaker(name={self._name!r}, state={self._state.value!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def opened_at(self) -> datetime | None:
        return self._opened_at

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @property
    def last_success_at(self) -> datetime | None:
        return self._last_success_at

    async def _emit_state_change(self, transition: _Transition | None) -> None:
        if transition is None:
            return
        old, new = transition
        for listener in self._listeners:
            try:
                await listener.on_state_change(self._name, old, new)
            except Exception:
                continue

    async def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_rejected(self._name)
            except Exception:
                continue

    async def _emit_call_succeeded(self, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_succeeded(self._name, elapsed)
            except Exception:
                continue

    async def _emit_call_failed(self, exc: Exception, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_failed(self._name, exc, elapsed)
            except Exception:
                continue

    def _cooldown_remaining(self, now: datetime) -> float:
        if self._state != CircuitState.OPEN:
            return 0.0
        opened_at = now if self._opened_at is None else self._opened_at
        elapsed = (now - opened_at).total_seconds()
        return max(self.config.cooldown - elapsed, 0.0)

    def _cached(self, now: datetime, max_age: float) -> _CacheEntry[T] | None:
        entry = self._cache
        if entry is None:
            return None
        if (now - entry.fetched_at).total_seconds() >= max_age:
            return None
        return entry

    def _serve_fallback(self, fallback: T) -> T:
        stale = self._cached(_utcnow(), self.config.stale_ceiling)
        if stale is not None:
            self._data_state = DataState(
                mode="unavailable", updated_at=stale.fetched_at
            )
            return stale.value
        self._data_state = DataState(mode="unavailable")
        return fallback

    def _record_success(self, result: T, *, is_probe: bool) -> _Transition | None:
        now = _utcnow()
        self._last_success_at = now
        if self.config.cache_ttl > 0:
            self._cache = _CacheEntry(value=result, fetched_at=now)
        self._data_state = DataState(mode="live", updated_at=now)

        if is_probe and self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._opened_at = None
            return (CircuitState.HALF_OPEN, CircuitState.CLOSED)
        # A concurrent call may have tripped the circuit; only a probe closes it.
        if self._state == CircuitState.CLOSED:
            self._consecutive_failures = 0
        return None

    def _record_failure(self, exc: Exception, *, is_probe: bool) -> _Transition | None:
        now = _utcnow()
        self._last_error = exc
        self._last_failure_at = now
        self._consecutive_failures += 1

        if is_probe and self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._opened_at = now
            return (CircuitState.HALF_OPEN, CircuitState.OPEN)
        # A reset during the probe makes its result an ordinary CLOSED call.
        if self._state != CircuitState.CLOSED:
            return None
        if self._consecutive_failures >= self.config.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = now
            return (CircuitState.CLOSED, CircuitState.OPEN)
        return None

    async def execute(self, operation: Callable[[], Awaitable[T]], fallback: T) -> T:
        """Run ``operation`` under breaker protection.

        Args:
            operation: Zero-argument async callable performing the external
                call. It must raise on any result the caller considers unusable.
            fallback: Value returned whenever the operation is not run or does
                not succeed. It is returned as-is, never mutated.

        Returns:
            The operation's result, a cached result, or ``fallback``.
        """
        now = _utcnow()
        if self.config.cache_ttl > 0:
            fresh = self._cached(now, self.config.cache_ttl)
            if fresh is not None:
                self._data_state = DataState(mode="cached", updated_at=fresh.fetched_at)
                return fresh.value

        # State checks and probe-gate acquisition happen before the first await
        # so racing callers observe the half-open transition.
        is_probe = False
        if self._state != CircuitState.CLOSED:
            if self._cooldown_remaining(now) > 0 or not self._probe_gate.try_acquire():
                await self._emit_call_rejected()
                return self._serve_fallback(fallback)
            is_probe = True
            self._state = CircuitState.HALF_OPEN

        try:
            if is_probe:
                await self._emit_state_change(
                    (CircuitState.OPEN, CircuitState.HALF_OPEN)
                )
            start = time.monotonic()
            try:
                result = await operation()
            except Exception as exc:
                elapsed = max(time.monotonic() - start, 0.0)
                transition = self._record_failure(exc, is_probe=is_probe)
                await self._emit_call_failed(exc, elapsed)
                await self._emit_state_change(transition)
                return self._serve_fallback(fallback)

            elapsed = max(time.monotonic() - start, 0.0)
            transition = self._record_success(result, is_probe=is_probe)
            await self._emit_state_change(transition)
            await self._emit_call_succeeded(elapsed)
            return result
        finally:
            if is_probe:
                # Cancelled probe: fall back to OPEN keeping the current window.
                if self._state == CircuitState.HALF_OPEN:
                    self._state = CircuitState.OPEN
                self._probe_gate.release()

    def get_status(self) -> str:
        """Return a one-line display summary for a diagnostics panel."""
        if self._state == CircuitState.CLOSED:
            failures = self._consecutive_failures
            if failures == 0:
                return f"{self._name}: closed"
            noun = "failure" if failures == 1 else "failures"
            return f"{self._name}: closed ({failures} {noun})"
        if self._state == CircuitState.HALF_OPEN:
            return f"{self._name}: half_open (probing)"
        remaining = self._cooldown_remaining(_utcnow())
        if remaining > 0:
            return f"{self._name}: open (retry in {math.ceil(remaining)}s)"
        return f"{self._name}: open (probe ready)"

    def is_on_cooldown(self) -> bool:
        """Return whether calls are currently short-circuited by the cooldown."""
        return self._cooldown_remaining(_utcnow()) > 0

    def get_data_state(self) -> DataState:
        """Return where the value served by the last ``execute`` came from."""
        return self._data_state

    def clear_cache(self) -> None:
        """Drop any cached operation result."""
        self._cache = None

    def snapshot(self) -> BreakerSnapshot:
        """Return an immutable view of the breaker's current internals."""
        return BreakerSnapshot(
            name=self._name,
            state=self._state,
            consecutive_failures=self._consecutive_failures,
            opened_at=self._opened_at,
            last_failure_at=self._last_failure_at,
            last_success_at=self._last_success_at,
            last_error=None if self._last_error is None else str(self._last_error),
        )

    async def reset(self) -> None:
        """Force the breaker back to ``CLOSED`` and clear failure counters."""
        old = self._state
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = None
        self._last_error = None
        if old != CircuitState.CLOSED:
            await self._emit_state_change((old, CircuitState.CLOSED))
