from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Generic, TypeVar, cast

import httpx
from tenacity import retry_if_exception_type

from feedguard.circuit_breaker import CircuitBreaker, DataState
from feedguard.retry import RetryBackoffPolicy, build_exponential_jitter_retrying

T = TypeVar("T")

RETRY_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
MAX_ERROR_BODY_LENGTH = 1024


class FeedRequestError(RuntimeError):
    """Raised inside a feed operation when the upstream result is unusable."""

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        """Initialize request-error metadata.

        Args:
            message: Human-readable error message.
            http_status: Optional HTTP status returned by the feed.
            response_body: Optional response payload text, truncated.
        """
        super().__init__(message)
        self.http_status = http_status
        self.response_body = (
            None if response_body is None else response_body[:MAX_ERROR_BODY_LENGTH]
        )


class FeedTransientError(FeedRequestError):
    """Raised for retryable feed failures (transport errors, 429, 5xx)."""


class JsonFeedOperation(Generic[T]):
    """Zero-argument async operation fetching one JSON feed over HTTP.

    Any non-success status, transport error or invalid JSON body raises, so a
    breaker wrapping the operation counts it as a failure. ``parse`` turns the
    decoded payload into the caller's result type and may raise as well.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        url: str,
        parse: Callable[[object], T] | None = None,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        retry_policy: RetryBackoffPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Create an operation bound to one endpoint.

        Args:
            client: Shared async HTTP client; its timeout bounds each attempt.
            url: Feed URL.
            parse: Converts the decoded JSON payload into the result.
            headers: Extra request headers.
            params: Query parameters.
            retry_policy: Retry transient failures within one call when set.
            sleep: Async sleep used between retries.
        """
        self._client = client
        self._url = url
        self._parse = parse
        self._headers = {"Accept": "application/json", **dict(headers or {})}
        self._params = dict(params or {})
        self._retry_policy = retry_policy
        self._sleep = sleep

    async def __call__(self) -> T:
        if self._retry_policy is None:
            payload = await self._fetch_once()
        else:
            payload = await self._fetch_with_retry(self._retry_policy)
        if self._parse is None:
            return cast(T, payload)
        return self._parse(payload)

    async def _fetch_with_retry(self, policy: RetryBackoffPolicy) -> object:
        retrying = build_exponential_jitter_retrying(
            retry=retry_if_exception_type(FeedTransientError),
            policy=policy,
            sleep=self._sleep,
        )
        async for attempt in retrying:
            with attempt:
                return await self._fetch_once()
        raise RuntimeError("Feed retry loop exited unexpectedly.")

    async def _fetch_once(self) -> object:
        try:
            response = await self._client.get(
                self._url,
                headers=self._headers,
                params=self._params,
            )
        except httpx.RequestError as exc:
            raise FeedTransientError(
                f"{self._url}: {exc.__class__.__name__}: {exc}"
            ) from exc

        status = response.status_code
        if status in RETRY_STATUSES:
            raise FeedTransientError(
                f"HTTP {status}",
                http_status=status,
                response_body=response.text,
            )
        if status >= 400:
            raise FeedRequestError(
                f"HTTP {status}",
                http_status=status,
                response_body=response.text,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise FeedRequestError(
                "Feed response is not valid JSON.",
                http_status=status,
                response_body=response.text,
            ) from exc


class FeedSource(Generic[T]):
    """Bundle one integration's breaker, operation and fallback."""

    def __init__(
        self,
        *,
        breaker: CircuitBreaker[T],
        operation: Callable[[], Awaitable[T]],
        fallback: T,
    ) -> None:
        self.breaker = breaker
        self._operation = operation
        self._fallback = fallback

    @property
    def name(self) -> str:
        return self.breaker.name

    async def refresh(self) -> T:
        """Fetch the feed through the breaker; never raises for feed failures."""
        return await self.breaker.execute(self._operation, self._fallback)

    def status(self) -> str:
        return self.breaker.get_status()

    def data_state(self) -> DataState:
        return self.breaker.get_data_state()
