from __future__ import annotations

import pytest

from feedguard.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    LoggingBreakerListener,
)
from tests.feedguard.support.fakes import CountingOperation, FakeClock, FakeLogger

pytestmark = pytest.mark.asyncio


async def test_opening_is_logged_as_warning(fake_logger: FakeLogger) -> None:
    listener = LoggingBreakerListener(fake_logger)

    await listener.on_state_change(
        "NWS Weather", CircuitState.CLOSED, CircuitState.OPEN
    )

    assert fake_logger.calls == [
        (
            "warning",
            "circuit_breaker.opened",
            {"breaker": "NWS Weather", "from_state": "closed"},
        )
    ]


async def test_recovery_is_logged_as_info(fake_logger: FakeLogger) -> None:
    listener = LoggingBreakerListener(fake_logger)

    await listener.on_state_change(
        "NWS Weather", CircuitState.HALF_OPEN, CircuitState.CLOSED
    )

    assert fake_logger.calls == [
        (
            "info",
            "circuit_breaker.state_changed",
            {
                "breaker": "NWS Weather",
                "from_state": "half_open",
                "to_state": "closed",
            },
        )
    ]


async def test_failures_include_error_details(fake_logger: FakeLogger) -> None:
    listener = LoggingBreakerListener(fake_logger)

    await listener.on_call_failed("FRED Economic", ValueError("bad json"), 0.12345)

    level, event, fields = fake_logger.calls[0]
    assert level == "warning"
    assert event == "circuit_breaker.call_failed"
    assert fields == {
        "breaker": "FRED Economic",
        "error_type": "ValueError",
        "error_message": "bad json",
        "elapsed_seconds": 0.123,
    }


async def test_successes_are_silent_unless_enabled(fake_logger: FakeLogger) -> None:
    quiet = LoggingBreakerListener(fake_logger)
    await quiet.on_call_succeeded("FRED Economic", 0.5)
    assert fake_logger.calls == []

    verbose = LoggingBreakerListener(fake_logger, log_successes=True)
    await verbose.on_call_succeeded("FRED Economic", 0.5)
    assert fake_logger.events() == ["circuit_breaker.call_succeeded"]


async def test_breaker_drives_logging_listener(
    clock: FakeClock, fake_logger: FakeLogger
) -> None:
    breaker: CircuitBreaker[list[str]] = CircuitBreaker(
        "ACLED Conflicts",
        config=CircuitBreakerConfig(failure_threshold=1, cooldown=30.0),
        listeners=[LoggingBreakerListener(fake_logger)],
    )

    await breaker.execute(CountingOperation(RuntimeError("HTTP 500")), [])
    await breaker.execute(CountingOperation(["event"]), [])

    assert fake_logger.events() == [
        "circuit_breaker.call_failed",
        "circuit_breaker.opened",
        "circuit_breaker.call_rejected",
    ]
