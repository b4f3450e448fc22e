from __future__ import annotations

import pytest
from tenacity import AsyncRetrying, RetryCallState
from tenacity.retry import retry_if_exception_type

from feedguard.retry import RetryBackoffPolicy, build_exponential_jitter_retrying

pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize(
    ("attempts", "min_seconds", "max_seconds", "message"),
    [
        (0, 0.0, 1.0, "attempts must be >= 1"),
        (1, -0.1, 1.0, "min_seconds must be >= 0"),
        (1, 0.1, -0.1, "max_seconds must be >= 0"),
        (1, 2.0, 1.0, "max_seconds must be >= min_seconds"),
    ],
)
async def test_retry_backoff_policy_validation(
    attempts: int,
    min_seconds: float,
    max_seconds: float,
    message: str,
) -> None:
    with pytest.raises(ValueError, match=message):
        RetryBackoffPolicy(
            attempts=attempts,
            min_seconds=min_seconds,
            max_seconds=max_seconds,
        )


async def test_build_retrying_without_optional_hooks() -> None:
    retrying = build_exponential_jitter_retrying(
        retry=retry_if_exception_type(ValueError),
        policy=RetryBackoffPolicy(attempts=2, min_seconds=0.0, max_seconds=0.0),
    )

    assert isinstance(retrying, AsyncRetrying)


async def test_exhausted_retries_reraise_last_error() -> None:
    before_sleep_calls: list[int] = []
    sleep_calls: list[float] = []

    async def _sleep(delay: float) -> None:
        sleep_calls.append(delay)

    def _before_sleep(state: RetryCallState) -> None:
        before_sleep_calls.append(state.attempt_number)

    retrying = build_exponential_jitter_retrying(
        retry=retry_if_exception_type(ValueError),
        policy=RetryBackoffPolicy(attempts=3, min_seconds=0.0, max_seconds=0.0),
        sleep=_sleep,
        before_sleep=_before_sleep,
    )

    attempts = 0
    with pytest.raises(ValueError, match="boom"):
        async for attempt in retrying:
            with attempt:
                attempts += 1
                raise ValueError("boom")

    assert attempts == 3
    assert before_sleep_calls == [1, 2]
    assert len(sleep_calls) == 2


async def test_non_matching_errors_are_not_retried() -> None:
    retrying = build_exponential_jitter_retrying(
        retry=retry_if_exception_type(ValueError),
        policy=RetryBackoffPolicy(attempts=5, min_seconds=0.0, max_seconds=0.0),
    )

    attempts = 0
    with pytest.raises(KeyError):
        async for attempt in retrying:
            with attempt:
                attempts += 1
                raise KeyError("missing")

    assert attempts == 1
