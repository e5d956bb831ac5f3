"""
Async Apify API v2 client over the shared HTTP client.

Three primitives:
- start_actor_run(actor_id, input) -> ApifyRun
- poll_run(run_id, timeout, interval) -> ApifyRun
- list_dataset_items(dataset_id, limit) -> list[dict]

Endpoints:
- POST /v2/acts/{actorId}/runs
- GET  /v2/actor-runs/{runId}
- GET  /v2/datasets/{datasetId}/items
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from src.ingestion.base_fetcher import FetcherError
from src.ingestion.http_client import HTTPClient

logger = logging.getLogger(__name__)

APIFY_API_BASE = "https://api.apify.com"

TERMINAL_STATUSES = frozenset({"SUCCEEDED", "FAILED", "TIMED-OUT", "ABORTED"})


@dataclass
class ApifyRun:
    """Status snapshot of an actor run."""

    run_id: str
    status: str
    dataset_id: str | None = None
    status_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_success(self) -> bool:
        return self.status == "SUCCEEDED"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ApifyRun":
        return cls(
            run_id=data.get("id", ""),
            status=data.get("status", "UNKNOWN"),
            dataset_id=data.get("defaultDatasetId"),
            status_message=data.get("statusMessage"),
        )


class ApifyClient:
    """Bearer-authenticated Apify REST client."""

    def __init__(self, http: HTTPClient, token: str, base_url: str = APIFY_API_BASE):
        if not token:
            raise ValueError("Apify token is required")
        self._http = http
        self._headers = {"Authorization": f"Bearer {token}"}
        self._base_url = base_url.rstrip("/")

    async def start_actor_run(self, actor_id: str, run_input: dict[str, Any]) -> ApifyRun:
        # Actor ids contain a slash that must stay inside one path segment
        url = f"{self._base_url}/v2/acts/{quote(actor_id, safe='')}/runs"
        response = await self._http.post(url, headers=self._headers, json_body=run_input)
        run = ApifyRun.from_api(response.json().get("data", {}))
        logger.info(f"Started Apify actor {actor_id}: run_id={run.run_id} status={run.status}")
        return run

    async def poll_run(
        self,
        run_id: str,
        timeout: float = 300.0,
        interval: float = 5.0,
    ) -> ApifyRun:
        """
        Poll until the run reaches a terminal state.

        Raises:
            FetcherError: TIMEOUT when the deadline passes
        """
        url = f"{self._base_url}/v2/actor-runs/{run_id}"
        deadline = time.monotonic() + timeout

        while True:
            response = await self._http.get(url, headers=self._headers)
            run = ApifyRun.from_api(response.json().get("data", {}))
            if run.is_terminal:
                logger.info(f"Apify run {run_id} finished with {run.status}")
                return run

            if time.monotonic() + interval > deadline:
                raise FetcherError(
                    FetcherError.TIMEOUT,
                    f"Apify run {run_id} did not finish within {timeout:.0f}s",
                )
            logger.debug(f"Apify run {run_id} still {run.status}")
            await asyncio.sleep(interval)

    async def list_dataset_items(self, dataset_id: str, limit: int = 20) -> list[dict[str, Any]]:
        url = f"{self._base_url}/v2/datasets/{dataset_id}/items"
        response = await self._http.get(
            url, params={"limit": limit, "clean": "true"}, headers=self._headers
        )
        items = response.json()
        if isinstance(items, dict):
            items = items.get("items", [])
        return items

    async def run_actor(
        self,
        actor_id: str,
        run_input: dict[str, Any],
        limit: int,
        timeout: float = 300.0,
        interval: float = 5.0,
    ) -> list[dict[str, Any]]:
        """
        Start an actor, wait for it, and return its dataset items.

        Raises:
            FetcherError: FETCH_FAILED for non-success terminal states,
                TIMEOUT when polling exceeds the deadline
        """
        run = await self.start_actor_run(actor_id, run_input)
        if not run.is_terminal:
            run = await self.poll_run(run.run_id, timeout=timeout, interval=interval)

        if not run.is_success:
            detail = f": {run.status_message}" if run.status_message else ""
            raise FetcherError(
                FetcherError.FETCH_FAILED,
                f"Apify actor {actor_id} run {run.run_id} ended with {run.status}{detail}",
            )
        if not run.dataset_id:
            return []
        return await self.list_dataset_items(run.dataset_id, limit=limit)
