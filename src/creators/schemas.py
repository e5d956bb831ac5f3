"""Data models for creators, their source URLs and per-creator fetch state."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from src.ingestion.schemas import Platform

logger = logging.getLogger(__name__)

FETCH_STATE_SCHEMA_VERSION = 1

# Per-platform timestamp field on FetchState
PLATFORM_FETCH_FIELDS: dict[Platform, str] = {
    Platform.YOUTUBE: "last_youtube_fetch",
    Platform.TWITTER: "last_twitter_fetch",
    Platform.THREADS: "last_threads_fetch",
    Platform.LINKEDIN: "last_linkedin_fetch",
    Platform.RSS: "last_rss_fetch",
}

_TIMESTAMP_FIELDS = ("last_fetched_at", *PLATFORM_FETCH_FIELDS.values())


class FetchStateConflictError(Exception):
    """Raised when fetch state could not be written after all CAS retries."""

    def __init__(self, creator_id: str, attempts: int):
        super().__init__(
            f"Fetch state for creator {creator_id} changed concurrently "
            f"{attempts} times; giving up"
        )
        self.creator_id = creator_id
        self.attempts = attempts


class FetchState(BaseModel):
    """
    Typed incremental-fetch bookkeeping for one creator.

    `version` increases by one on every successful write and is the
    compare-and-swap token: a writer must present the version it read.
    """

    model_config = {"extra": "ignore"}

    schema_version: Literal[1] = FETCH_STATE_SCHEMA_VERSION
    version: int = Field(default=0, ge=0)

    last_fetched_at: datetime | None = None
    last_youtube_fetch: datetime | None = None
    last_twitter_fetch: datetime | None = None
    last_threads_fetch: datetime | None = None
    last_linkedin_fetch: datetime | None = None
    last_rss_fetch: datetime | None = None

    last_linkedin_count: int | None = Field(default=None, ge=0)
    last_fetch_stats: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_metadata(cls, metadata: dict[str, Any] | None) -> "FetchState":
        """
        Build state from a legacy creator metadata blob.

        Older rows kept ISO-8601 strings like ``last_youtube_fetch`` directly
        in metadata. Unknown keys are ignored; unparseable values are dropped.
        """
        metadata = metadata or {}
        data: dict[str, Any] = {}
        for name in _TIMESTAMP_FIELDS:
            if metadata.get(name):
                data[name] = metadata[name]
        if metadata.get("last_linkedin_count") is not None:
            data["last_linkedin_count"] = metadata["last_linkedin_count"]
        if isinstance(metadata.get("last_fetch_stats"), dict):
            data["last_fetch_stats"] = metadata["last_fetch_stats"]

        return cls._validate_lenient(data, source="metadata")

    @classmethod
    def from_db(
        cls,
        fetch_state: dict[str, Any] | None,
        metadata: dict[str, Any] | None = None,
    ) -> "FetchState":
        """
        Validate a stored state, falling back to legacy metadata.

        A never-written state (version 0, no timestamps), such as the
        column default, is merged with whatever the legacy metadata holds.
        """
        if not fetch_state or fetch_state.get("schema_version") != FETCH_STATE_SCHEMA_VERSION:
            return cls.from_metadata(metadata)

        state = cls._validate_lenient(fetch_state, source="fetch_state")
        if state.version == 0 and state.is_blank():
            return state.merged_with(cls.from_metadata(metadata))
        return state

    @classmethod
    def _validate_lenient(cls, data: dict[str, Any], source: str) -> "FetchState":
        """Validate `data`, dropping fields that fail on their own."""
        try:
            return cls.model_validate(data)
        except ValidationError:
            pass

        valid = {}
        for key, value in data.items():
            try:
                cls.model_validate({key: value})
            except ValidationError:
                logger.warning(f"Dropping invalid {source} field {key}={value!r}")
                continue
            valid[key] = value
        return cls.model_validate(valid)

    def is_blank(self) -> bool:
        """True when no fetch timestamp has been recorded."""
        return all(getattr(self, name) is None for name in _TIMESTAMP_FIELDS)

    def platform_fetch(self, platform: Platform | str) -> datetime | None:
        return getattr(self, PLATFORM_FETCH_FIELDS[Platform(platform)])

    def merged_with(self, other: "FetchState") -> "FetchState":
        """
        Combine two states field by field.

        Timestamps keep the newer value; counts and stats come from `other`
        when it has them. The version is the larger of the two.
        """
        data = self.model_dump()
        for name in _TIMESTAMP_FIELDS:
            mine, theirs = getattr(self, name), getattr(other, name)
            if theirs is not None and (mine is None or theirs > mine):
                data[name] = theirs
        if other.last_linkedin_count is not None:
            data["last_linkedin_count"] = other.last_linkedin_count
        if other.last_fetch_stats:
            data["last_fetch_stats"] = other.last_fetch_stats
        data["version"] = max(self.version, other.version)
        return FetchState.model_validate(data)

    def to_db(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


@dataclass
class CreatorUrl:
    """A source URL belonging to a creator, with its declared platform."""

    creator_id: str
    platform: Platform
    url: str
    id: str | None = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass
class Creator:
    """
    A tracked creator.

    user_id is the owning user; None means the creator is system-wide.
    """

    id: str
    display_name: str
    avatar_url: str | None = None
    user_id: str | None = None
    metadata: dict = field(default_factory=dict)
    fetch_state: FetchState = field(default_factory=FetchState)
    urls: list[CreatorUrl] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def urls_for(self, platforms: set[Platform] | None = None) -> list[CreatorUrl]:
        if not platforms:
            return list(self.urls)
        return [u for u in self.urls if u.platform in platforms]
