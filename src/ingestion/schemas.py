"""
Canonical content schema for the content-tracker pipeline.

CRITICAL: CreateContentInput flows from the normalizer into the content store
and is persisted column-for-column. Do not rename fields without updating the
content repository SQL.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

MAX_TITLE_LENGTH = 255
MAX_URL_LENGTH = 255
MAX_CONTENT_ID_LENGTH = 255


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class Platform(str, Enum):
    """Supported content source platforms."""

    RSS = "rss"
    YOUTUBE = "youtube"
    TWITTER = "twitter"
    THREADS = "threads"
    LINKEDIN = "linkedin"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    LINK_PREVIEW = "link_preview"


class ReferenceType(str, Enum):
    """How a post relates to another post on the same platform."""

    QUOTE = "quote"
    RETWEET = "retweet"
    REPLY = "reply"


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class SummaryStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class MediaUrl(BaseModel):
    """A single media attachment or link preview."""

    url: str
    type: MediaType
    title: str | None = None
    width: int | None = Field(default=None, ge=0)
    height: int | None = Field(default=None, ge=0)
    duration: int | None = Field(default=None, ge=0, description="Seconds")
    size: int | None = Field(default=None, ge=0, description="Bytes")
    thumbnail_url: str | None = None

    # Link preview fields
    link_url: str | None = None
    link_title: str | None = None
    link_description: str | None = None
    link_domain: str | None = None

    model_config = {"use_enum_values": True}


class EngagementMetrics(BaseModel):
    """
    Platform-normalized engagement signals.

    Every field is optional: platforms expose different subsets and an
    absent metric is not the same as a zero.
    """

    views: int | None = Field(default=None, ge=0)
    likes: int | None = Field(default=None, ge=0)
    comments: int | None = Field(default=None, ge=0)
    shares: int | None = Field(default=None, ge=0)
    retweets: int | None = Field(default=None, ge=0)
    quotes: int | None = Field(default=None, ge=0)
    bookmarks: int | None = Field(default=None, ge=0)
    reactions: int | None = Field(default=None, ge=0)
    custom: dict[str, Any] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.custom and all(
            getattr(self, name) is None
            for name in ("views", "likes", "comments", "shares", "retweets",
                         "quotes", "bookmarks", "reactions")
        )


class ReferencedContent(BaseModel):
    """Snapshot of the post being quoted, reposted or replied to."""

    platform_content_id: str
    url: str | None = None
    text: str | None = None
    author: dict[str, Any] | None = None
    created_at: datetime | None = None
    media_urls: list[MediaUrl] = Field(default_factory=list)


class CreateContentInput(BaseModel):
    """
    CANONICAL CONTENT RECORD

    Output of the normalizer, input of the content store. The dedup key is
    (creator_id, platform, platform_content_id).
    """

    # Identity
    creator_id: str = Field(..., min_length=1)
    platform: Platform
    platform_content_id: str = Field(
        ...,
        min_length=1,
        max_length=MAX_CONTENT_ID_LENGTH,
        description="Platform-native identifier (video id, tweet id, RSS guid)",
    )
    url: str = Field(..., description="Canonical URL of the item")

    # Presentation
    title: str | None = Field(default=None, max_length=MAX_TITLE_LENGTH)
    description: str | None = None
    thumbnail_url: str | None = None
    published_at: datetime | None = None

    # Body
    content_body: str | None = None
    word_count: int | None = Field(default=None, ge=0)
    reading_time_minutes: int | None = Field(default=None, ge=0)
    media_urls: list[MediaUrl] = Field(default_factory=list)
    engagement_metrics: EngagementMetrics = Field(default_factory=EngagementMetrics)

    # Quote / repost / reply
    reference_type: ReferenceType | None = None
    referenced_content_id: str | None = None
    referenced_content: ReferencedContent | None = None

    processing_status: ProcessingStatus = ProcessingStatus.PENDING

    model_config = {"use_enum_values": True}

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an absolute http(s) URL that fits the column."""
        v = v.strip()
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid URL: {v!r}")
        if len(v) > MAX_URL_LENGTH:
            raise ValueError(f"URL exceeds {MAX_URL_LENGTH} characters")
        return v

    @field_validator("platform_content_id")
    @classmethod
    def strip_content_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("platform_content_id must not be blank")
        return v

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        platform = self.platform.value if isinstance(self.platform, Platform) else self.platform
        return (self.creator_id, platform, self.platform_content_id)


class Content(CreateContentInput):
    """A persisted content row."""

    id: str
    content_hash: str | None = None
    duplicate_group_id: str | None = None
    is_primary: bool = True
    ai_summary_short: str | None = None
    ai_summary_long: str | None = None
    summary_status: SummaryStatus = SummaryStatus.PENDING
    summary_model: str | None = None
    summary_generated_at: datetime | None = None
    summary_error_message: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
