"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Literal


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


DataMode = Literal["live", "cached", "unavailable"]


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for status and logging.

    Attributes:
        name: Breaker name.
        state: Current breaker state.
        consecutive_failures: Failures counted since the last success.
        opened_at: Timestamp when the breaker last entered ``OPEN``, if open.
        last_failure_at: Timestamp of the last counted failure, if any.
        last_success_at: Timestamp of the last successful call, if any.
        last_error: Text of the most recent failure, if any.
    """

    name: str
    state: CircuitState
    consecutive_failures: int
    opened_at: datetime | None
    last_failure_at: datetime | None
    last_success_at: datetime | None
    last_error: str | None


@dataclass(frozen=True)
class DataState:
    """Describe where the value returned by the last ``execute`` came from.

    Attributes:
        mode: ``live`` for a fresh operation result, ``cached`` for a result
            served from the fresh cache, ``unavailable`` when a fallback or
            stale cached result was served instead.
        updated_at: When the served data was fetched, ``None`` for fallbacks.
    """

    mode: DataMode
    updated_at: datetime | None = None
