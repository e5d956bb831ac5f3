"""
Base fetcher interface shared by every platform.

Each fetcher implements _fetch_raw() and returns raw platform payloads.
The base class provides:
- FetchOptions / FetchResult value types
- Timing, capping and metrics around the raw call
- Conversion of expected remote failures into FetchResult(success=False)
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.ingestion.http_client import HTTPClient, HTTPClientError, RateLimitError
from src.ingestion.schemas import Platform
from src.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class FetcherError(Exception):
    """Expected remote failure, carried to the caller as FetchResult.error."""

    CHANNEL_NOT_FOUND = "CHANNEL_NOT_FOUND"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    INVALID_API_KEY = "INVALID_API_KEY"
    INVALID_ACCESS_TOKEN = "INVALID_ACCESS_TOKEN"
    FORBIDDEN = "FORBIDDEN"
    FETCH_FAILED = "FETCH_FAILED"
    TIMEOUT = "TIMEOUT"
    SNAPSHOT_FAILED = "SNAPSHOT_FAILED"

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class FetcherNotConfiguredError(Exception):
    """Raised when a platform's credential is missing from the environment."""

    def __init__(self, platform: Platform, display_name: str, env_var: str):
        self.platform = platform
        self.env_var = env_var
        super().__init__(
            f"{display_name} not configured. "
            f"Please add {env_var} to environment variables."
        )


@dataclass
class FetchOptions:
    """Window for a single fetch."""

    max_results: int = 10
    since: datetime | None = None


@dataclass
class FetchResult:
    """
    Outcome of one fetch.

    On success `items` holds raw platform payloads (possibly empty). On
    failure `error` holds a human-readable message and `error_code` the
    FetcherError code when one applies.
    """

    success: bool
    items: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None
    # Side data some fetchers expose, e.g. authors seen in a Twitter search.
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, items: list[dict[str, Any]], **extras: Any) -> "FetchResult":
        return cls(success=True, items=items, extras=extras)

    @classmethod
    def failed(cls, error: str, error_code: str | None = None) -> "FetchResult":
        return cls(success=False, error=error, error_code=error_code)


class BaseFetcher(ABC):
    """
    Abstract base class for platform fetchers.

    Subclasses must implement:
        - platform: Platform enum value
        - _fetch_raw(): Return raw items for a source URL

    Subclasses raise FetcherError for failures the platform reports
    (unknown channel, quota, failed scrape). HTTPClientError from the
    shared client is handled here as well.
    """

    def __init__(self, http: HTTPClient):
        self._http = http

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """Return the platform this fetcher handles."""
        ...

    @property
    def name(self) -> str:
        return f"{self.platform.value}_fetcher"

    @abstractmethod
    async def _fetch_raw(
        self, source_url: str, options: FetchOptions
    ) -> list[dict[str, Any]] | FetchResult:
        """
        Fetch raw items from the platform.

        Returning a FetchResult lets a fetcher attach extras; returning a
        plain list is the common case.
        """
        ...

    async def fetch(
        self, source_url: str, options: FetchOptions | None = None
    ) -> FetchResult:
        """
        Fetch up to options.max_results raw items for a source URL.

        Never raises for FetcherError or HTTPClientError.
        """
        options = options or FetchOptions()
        metrics = get_metrics()
        platform = self.platform.value
        start = time.perf_counter()

        logger.info(
            f"{self.name} fetching {source_url} "
            f"(max_results={options.max_results}, since={options.since})"
        )

        try:
            raw = await self._fetch_raw(source_url, options)
        except FetcherError as e:
            metrics.record_fetch_error(platform, e.code)
            logger.warning(f"{self.name} failed for {source_url}: [{e.code}] {e.message}")
            return FetchResult.failed(e.message, e.code)
        except RateLimitError as e:
            metrics.record_fetch_error(platform, "rate_limited")
            logger.warning(f"{self.name} rate limited for {source_url}: {e}")
            return FetchResult.failed(f"Rate limited: {e}", FetcherError.FETCH_FAILED)
        except HTTPClientError as e:
            metrics.record_fetch_error(platform, "http_error")
            logger.warning(f"{self.name} HTTP error for {source_url}: {e}")
            return FetchResult.failed(str(e), FetcherError.FETCH_FAILED)
        finally:
            metrics.record_fetch_latency(platform, time.perf_counter() - start)

        result = raw if isinstance(raw, FetchResult) else FetchResult.ok(raw)
        if result.success:
            result.items = result.items[: options.max_results]
            metrics.record_items_fetched(platform, len(result.items))
            logger.info(f"{self.name} fetched {len(result.items)} items from {source_url}")
        return result

    async def health_check(self) -> bool:
        """Override for platform-specific connectivity checks."""
        return True
