"""
RSS/Atom fetcher.

Downloads a feed with the shared HTTP client and parses it with
feedparser. Entries are flattened into plain dicts so the normalizer
never depends on feedparser types:

    {title, link, guid, pub_date, content, content_snippet,
     creator, categories, enclosure: {url, type, length} | None}
"""

import calendar
import logging
from datetime import datetime, timezone
from typing import Any

import feedparser
from bs4 import BeautifulSoup

from src.ingestion.base_fetcher import BaseFetcher, FetcherError, FetchOptions
from src.ingestion.http_client import HTTPClient
from src.ingestion.schemas import Platform

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _struct_to_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _html_to_text(fragment: str) -> str:
    if not fragment:
        return ""
    text = BeautifulSoup(fragment, "html.parser").get_text(separator=" ")
    return " ".join(text.split())


def entry_to_item(entry: Any, feed_title: str | None = None) -> dict[str, Any]:
    """Flatten one feedparser entry into the raw RSS item shape."""
    content = ""
    if entry.get("content"):
        content = entry["content"][0].get("value", "")
    summary = entry.get("summary", "")
    if not content:
        content = summary

    enclosure = None
    enclosures = entry.get("enclosures") or []
    if enclosures and enclosures[0].get("href"):
        first = enclosures[0]
        enclosure = {
            "url": first.get("href"),
            "type": first.get("type"),
            "length": first.get("length"),
        }

    return {
        "title": entry.get("title"),
        "link": entry.get("link"),
        "guid": entry.get("id") or entry.get("guid"),
        "pub_date": _struct_to_datetime(
            entry.get("published_parsed") or entry.get("updated_parsed")
        ),
        "content": content,
        "content_snippet": _html_to_text(summary),
        "creator": entry.get("author") or feed_title,
        "categories": [t.get("term", "") for t in entry.get("tags", []) if t.get("term")],
        "enclosure": enclosure,
    }


class RSSFetcher(BaseFetcher):
    """
    Fetches entries from a single RSS or Atom feed.

    A feed that parses with zero entries is a successful empty fetch; a
    document feedparser cannot make sense of is a failure.
    """

    def __init__(self, http: HTTPClient, user_agent: str):
        super().__init__(http)
        self._user_agent = user_agent

    @property
    def platform(self) -> Platform:
        return Platform.RSS

    async def _fetch_raw(self, source_url: str, options: FetchOptions) -> list[dict[str, Any]]:
        response = await self._http.get(
            source_url,
            headers={
                "User-Agent": self._user_agent,
                "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml",
            },
        )

        feed = feedparser.parse(response.content)
        entries = feed.get("entries", [])

        if feed.get("bozo") and not entries:
            reason = feed.get("bozo_exception")
            raise FetcherError(
                FetcherError.FETCH_FAILED,
                f"Failed to parse RSS feed: {reason or 'malformed document'}",
            )

        feed_title = feed.get("feed", {}).get("title")
        items = [entry_to_item(entry, feed_title) for entry in entries]

        # Most recent first; undated entries keep feed order at the end.
        items.sort(key=lambda item: item["pub_date"] or _EPOCH, reverse=True)

        if options.since:
            items = [
                item for item in items
                if item["pub_date"] is None or item["pub_date"] > options.since
            ]

        logger.debug(f"Parsed {len(entries)} entries from {source_url}")
        return items[: options.max_results]
