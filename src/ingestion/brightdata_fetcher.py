"""
LinkedIn fetcher backed by the Bright Data datasets API.

Collection is asynchronous:
    1. POST /datasets/v3/trigger           -> snapshot_id
    2. GET  /datasets/v3/progress/{id}     until ready | failed
    3. GET  /datasets/v3/snapshot/{id}     -> list of posts

A 400 from the snapshot download means the collection found nothing.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any

from src.ingestion.base_fetcher import BaseFetcher, FetcherError, FetchOptions
from src.ingestion.http_client import HTTPClient, HTTPClientError
from src.ingestion.schemas import Platform

logger = logging.getLogger(__name__)

BRIGHTDATA_API_BASE = "https://api.brightdata.com"


class LinkedInFetcher(BaseFetcher):
    """Recent posts for a LinkedIn profile or company page."""

    def __init__(
        self,
        http: HTTPClient,
        api_token: str,
        dataset_id: str,
        lookback_days: int = 1,
        poll_interval: float = 5.0,
        timeout: float = 300.0,
        base_url: str = BRIGHTDATA_API_BASE,
    ):
        super().__init__(http)
        self._headers = {"Authorization": f"Bearer {api_token}"}
        self._dataset_id = dataset_id
        self._lookback = timedelta(days=lookback_days)
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._base_url = base_url.rstrip("/")

    @property
    def platform(self) -> Platform:
        return Platform.LINKEDIN

    async def _fetch_raw(self, source_url: str, options: FetchOptions) -> list[dict[str, Any]]:
        now = datetime.now(timezone.utc)
        start = options.since or now - self._lookback

        snapshot_id = await self.trigger_collection(
            source_url, start_date=start, limit=options.max_results
        )
        await self.wait_for_snapshot(snapshot_id)
        posts = await self.download_snapshot(snapshot_id)

        valid = [p for p in posts if p.get("id") and p.get("url")]
        if len(valid) < len(posts):
            logger.debug(f"Dropped {len(posts) - len(valid)} LinkedIn posts without id or url")
        return valid

    async def trigger_collection(
        self,
        profile_url: str,
        start_date: datetime,
        end_date: datetime | None = None,
        limit: int = 10,
    ) -> str:
        target: dict[str, Any] = {"url": profile_url, "start_date": start_date.isoformat()}
        if end_date:
            target["end_date"] = end_date.isoformat()

        response = await self._http.post(
            f"{self._base_url}/datasets/v3/trigger",
            params={
                "dataset_id": self._dataset_id,
                "include_errors": "true",
                "type": "discover_new",
                "discover_by": "profile_url",
                "limit_per_input": str(limit),
            },
            headers=self._headers,
            json_body=[target],
        )
        snapshot_id = response.json().get("snapshot_id")
        if not snapshot_id:
            raise FetcherError(
                FetcherError.SNAPSHOT_FAILED,
                f"Bright Data returned no snapshot id for {profile_url}",
            )
        logger.info(f"Triggered LinkedIn collection for {profile_url}: snapshot={snapshot_id}")
        return snapshot_id

    async def wait_for_snapshot(self, snapshot_id: str) -> None:
        """
        Block until the snapshot is ready.

        Raises:
            FetcherError: SNAPSHOT_FAILED if collection fails, TIMEOUT on deadline
        """
        deadline = time.monotonic() + self._timeout
        while True:
            response = await self._http.get(
                f"{self._base_url}/datasets/v3/progress/{snapshot_id}",
                headers=self._headers,
            )
            status = response.json().get("status")
            if status == "ready":
                return
            if status == "failed":
                raise FetcherError(
                    FetcherError.SNAPSHOT_FAILED,
                    f"Bright Data snapshot {snapshot_id} failed",
                )
            if time.monotonic() + self._poll_interval > deadline:
                raise FetcherError(
                    FetcherError.TIMEOUT,
                    f"Timeout waiting for snapshot {snapshot_id} after {self._timeout:.0f}s",
                )
            await asyncio.sleep(self._poll_interval)

    async def download_snapshot(self, snapshot_id: str) -> list[dict[str, Any]]:
        try:
            response = await self._http.get(
                f"{self._base_url}/datasets/v3/snapshot/{snapshot_id}",
                params={"format": "json"},
                headers=self._headers,
            )
        except HTTPClientError as e:
            if e.status_code == 400:
                logger.info(f"Snapshot {snapshot_id} returned 400, treating as empty")
                return []
            raise

        data = response.json()
        if isinstance(data, dict):
            # Errors-only snapshots come back as a single object
            return [data] if data.get("id") else []
        return data
