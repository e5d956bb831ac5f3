"""
Shared HTTP layer for the source fetchers.

Provides:
- RetryConfig: Exponential backoff with jitter
- HTTPClient: Async httpx wrapper that retries 429/5xx and transport errors

Fetchers own request shapes and response parsing; this module owns
retries, backoff and the error types they surface.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for HTTP retries.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))
    """

    max_retries: int = 3
    max_backoff_seconds: float = 60.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        """Backoff in seconds for a 0-indexed retry attempt, jitter included."""
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + delay * self.jitter_factor * random.random()

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in RETRYABLE_STATUS_CODES

    def is_retryable_exception(self, exc: Exception) -> bool:
        return isinstance(
            exc,
            (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError),
        )


class HTTPClientError(Exception):
    """Raised for non-retryable responses or when retries are exhausted."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Raised when 429 persists after all retries."""


class HTTPClient:
    """
    Async HTTP client with retry logic.

    Example:
        async with HTTPClient(RetryConfig(max_retries=3)) as client:
            response = await client.get(
                "https://www.googleapis.com/youtube/v3/channels",
                params={"part": "contentDetails", "id": channel_id, "key": key},
            )
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ):
        """
        Args:
            retry_config: Retry behaviour. Uses defaults if None.
            timeout: Request timeout in seconds.
            headers: Default headers sent with every request.
        """
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.default_headers = dict(headers or {})
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> "HTTPClient":
        """Create the underlying connection pool. Idempotent."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.default_headers,
                follow_redirects=True,
            )
        return self

    async def __aenter__(self) -> "HTTPClient":
        return await self.open()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        GET with retries.

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
        """
        return await self.request("GET", url, params=params, headers=headers)

    async def post(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        form: dict[str, str] | None = None,
    ) -> httpx.Response:
        """POST with retries. ``json_body`` may be a dict or a list; ``form`` is url-encoded."""
        return await self.request(
            "POST", url, params=params, headers=headers, json_body=json_body, form=form
        )

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        form: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Execute a request, backing off on retryable failures."""
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        attempts = self.retry_config.max_retries + 1
        last_status_code: int | None = None
        last_response_body: str | None = None

        for attempt in range(attempts):
            try:
                response = await self._client.request(
                    method,
                    url,
                    params=params or None,
                    headers=headers or None,
                    json=json_body,
                    data=form,
                )
            except (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError) as e:
                if attempt < self.retry_config.max_retries:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"{type(e).__name__} for {method} {url}, "
                        f"attempt {attempt + 1}/{attempts}, backing off {backoff:.2f}s"
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise HTTPClientError(
                    f"Request failed after {attempt + 1} attempts: {e}",
                    status_code=last_status_code,
                ) from e

            if self.retry_config.is_retryable_status(response.status_code):
                last_status_code = response.status_code
                last_response_body = response.text

                if attempt < self.retry_config.max_retries:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"Status {response.status_code} from {method} {url}, "
                        f"attempt {attempt + 1}/{attempts}, backing off {backoff:.2f}s"
                    )
                    await asyncio.sleep(backoff)
                    continue

                error_cls = RateLimitError if response.status_code == 429 else HTTPClientError
                raise error_cls(
                    f"Request failed with status {response.status_code} "
                    f"after {attempt + 1} attempts",
                    status_code=response.status_code,
                    response_body=last_response_body,
                )

            if response.status_code >= 400:
                raise HTTPClientError(
                    f"Request failed with status {response.status_code}",
                    status_code=response.status_code,
                    response_body=response.text,
                )

            return response

        raise HTTPClientError(
            f"Request failed after {attempts} attempts",
            status_code=last_status_code,
            response_body=last_response_body,
        )
