from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.retry import retry_base


@dataclass(frozen=True)
class RetryBackoffPolicy:
    """Attempt count and backoff bounds for retries inside one feed operation.

    Retries here happen within a single breaker call: the breaker only sees
    the final outcome, so one exhausted retry sequence counts as one failure.
    """

    attempts: int = 2
    min_seconds: float = 0.25
    max_seconds: float = 2.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.min_seconds < 0:
            raise ValueError("min_seconds must be >= 0")
        if self.max_seconds < 0:
            raise ValueError("max_seconds must be >= 0")
        if self.max_seconds < self.min_seconds:
            raise ValueError("max_seconds must be >= min_seconds")


def build_exponential_jitter_retrying(
    *,
    retry: retry_base,
    policy: RetryBackoffPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with exponential jitter backoff.

    The last exception is re-raised once attempts are exhausted so callers see
    the real failure rather than ``tenacity.RetryError``.
    """
    options: dict[str, Any] = {
        "retry": retry,
        "wait": wait_exponential_jitter(
            initial=policy.min_seconds,
            max=policy.max_seconds,
        ),
        "stop": stop_after_attempt(policy.attempts),
        "reraise": True,
    }
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    return AsyncRetrying(**options)
