"""
Cross-platform duplicate detection.

The same piece of content often reaches several platforms: a video is
announced on X and LinkedIn, a post is mirrored to Threads. Each stored
row gets a content hash; rows sharing a hash (or, for social posts, a
near-identical text) are collected under one duplicate group, and one
row of the group is marked primary.

Hashing:
- twitter / threads / linkedin: creator id plus a fingerprint of the
  first 100 significant words of the post text, so the same post on
  different networks collides
- everything else: creator id, the normalized title, plus the YouTube
  video id or the site domain
"""

import hashlib
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol
from urllib.parse import urlparse

from src.ingestion.schemas import Platform

SOCIAL_PLATFORMS = frozenset({Platform.TWITTER, Platform.THREADS, Platform.LINKEDIN})

# Higher wins when picking a group's primary row
PLATFORM_PRIORITY: dict[Platform, int] = {
    Platform.YOUTUBE: 10,
    Platform.TWITTER: 8,
    Platform.LINKEDIN: 7,
    Platform.THREADS: 6,
    Platform.RSS: 5,
}

SIMILARITY_THRESHOLD = 0.85
SIMILARITY_WINDOW_DAYS = 30
FINGERPRINT_WORDS = 100

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_YOUTUBE_ID = re.compile(
    r"(?:youtube\.com/(?:watch\?(?:.*&)?v=|embed/|v/|shorts/|live/)|youtu\.be/)"
    r"([A-Za-z0-9_-]{11})"
)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class DedupCandidate(Protocol):
    platform: Platform
    published_at: datetime | None


@dataclass
class DuplicateResolution:
    """Where a new item lands relative to existing duplicates."""

    content_hash: str
    duplicate_group_id: str | None = None
    is_primary: bool = True
    # Existing row that stays primary; None when the new item is primary
    primary_id: str | None = None
    existing_ids: tuple[str, ...] = ()

    @property
    def has_duplicates(self) -> bool:
        return bool(self.existing_ids)


def normalize_text(text: str | None) -> str:
    if not text:
        return ""
    text = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def significant_words(text: str | None) -> list[str]:
    return [w for w in normalize_text(text).split(" ") if len(w) > 2]


def content_fingerprint(text: str | None) -> str:
    """Space-joined first significant words of `text`."""
    return " ".join(significant_words(text)[:FINGERPRINT_WORDS])


def text_similarity(first: str | None, second: str | None) -> float:
    """Jaccard similarity of the significant-word sets, 0.0 to 1.0."""
    a, b = set(significant_words(first)), set(significant_words(second))
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def youtube_video_id(url: str) -> str | None:
    match = _YOUTUBE_ID.search(url)
    return match.group(1) if match else None


def site_domain(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host.removeprefix("www.")


def dedup_text(
    platform: Platform | str,
    title: str | None,
    description: str | None,
    body: str | None,
) -> str:
    """The text that identifies an item: the post text on social, else the title."""
    if Platform(platform) in SOCIAL_PLATFORMS:
        return description or body or title or ""
    return title or description or body or ""


def generate_content_hash(
    creator_id: str,
    platform: Platform | str,
    url: str,
    title: str | None = None,
    description: str | None = None,
    content_body: str | None = None,
) -> str:
    """SHA-256 hex digest identifying the item across platforms."""
    platform = Platform(platform)
    text = dedup_text(platform, title, description, content_body)

    if platform in SOCIAL_PLATFORMS:
        key = f"{creator_id}:{content_fingerprint(text)}"
    else:
        parts = [creator_id, normalize_text(text)]
        if platform == Platform.YOUTUBE:
            video_id = youtube_video_id(url)
            if video_id:
                parts.append(video_id)
        elif platform == Platform.RSS:
            domain = site_domain(url)
            if domain:
                parts.append(domain)
        key = ":".join(parts)

    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def _rank(candidate: DedupCandidate) -> tuple[int, datetime]:
    published = candidate.published_at or _EPOCH
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    return (PLATFORM_PRIORITY.get(Platform(candidate.platform), 0), published)


def select_primary(candidates: list[DedupCandidate]) -> DedupCandidate:
    """
    Pick the primary of a duplicate group.

    Platform priority decides; on a tie the newest item wins, and on a
    full tie the earliest candidate in the list.

    Raises:
        ValueError: No candidates given
    """
    if not candidates:
        raise ValueError("No content provided for primary selection")
    return max(candidates, key=_rank)


def new_group_id() -> str:
    return str(uuid.uuid4())


def resolve_duplicates(
    item: DedupCandidate, content_hash: str, existing: list
) -> DuplicateResolution:
    """
    Place a new item among the stored rows it duplicates.

    The group id of the first grouped row is reused; otherwise a new one
    is minted. `existing` holds persisted rows (with `id` and
    `duplicate_group_id`).
    """
    if not existing:
        return DuplicateResolution(content_hash=content_hash)

    group_id = next(
        (row.duplicate_group_id for row in existing if row.duplicate_group_id),
        None,
    ) or new_group_id()
    primary = select_primary([*existing, item])
    existing_ids = tuple(row.id for row in existing)

    if primary is item:
        return DuplicateResolution(
            content_hash=content_hash,
            duplicate_group_id=group_id,
            is_primary=True,
            existing_ids=existing_ids,
        )
    return DuplicateResolution(
        content_hash=content_hash,
        duplicate_group_id=group_id,
        is_primary=False,
        primary_id=primary.id,
        existing_ids=existing_ids,
    )
