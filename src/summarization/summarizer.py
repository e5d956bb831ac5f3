"""
Summarizer collaborator.

Summary generation itself lives outside this service. The worker talks to
it through the Summarizer protocol; RemoteSummarizer is the HTTP
implementation used in deployment.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from src.ingestion.http_client import HTTPClient, HTTPClientError

logger = logging.getLogger(__name__)


@dataclass
class SummaryResult:
    """Summary for one content item, or the reason it could not be made."""

    content_id: str
    short: str | None = None
    long: str | None = None
    model: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.short or self.long)


@runtime_checkable
class Summarizer(Protocol):
    async def summarize(self, content_ids: list[str]) -> list[SummaryResult]:
        """Summarize the given content. Ids missing from the result count as failed."""
        ...


class SummarizerError(Exception):
    """The summarizer could not process a batch at all."""


class RemoteSummarizer:
    """
    POSTs content ids to a summarizer endpoint.

    Request:  {"content_ids": [...], "model": "..."}
    Response: {"results": [{"content_id", "short", "long", "model", "error"}]}
    """

    def __init__(self, http: HTTPClient, url: str, api_key: str, model: str):
        self._http = http
        self._url = url
        self._api_key = api_key
        self._model = model

    async def summarize(self, content_ids: list[str]) -> list[SummaryResult]:
        if not content_ids:
            return []

        try:
            response = await self._http.post(
                self._url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json_body={"content_ids": content_ids, "model": self._model},
            )
        except HTTPClientError as e:
            raise SummarizerError(f"Summarizer request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise SummarizerError(f"Summarizer returned invalid JSON: {e}") from e

        return [_parse_result(row, self._model) for row in payload.get("results") or []]


def _parse_result(row: dict[str, Any], default_model: str) -> SummaryResult:
    return SummaryResult(
        content_id=str(row.get("content_id") or row.get("contentId") or ""),
        short=row.get("short") or row.get("ai_summary_short"),
        long=row.get("long") or row.get("ai_summary_long"),
        model=row.get("model") or default_model,
        error=row.get("error"),
    )
