"""
Content normalizer - maps raw platform payloads to CreateContentInput.

One raw item in, one canonical record out. The normalizer never performs
I/O; fetchers hand it the raw dicts they received from the platform API
and the orchestrator decides what to do with failures.

Raw shapes handled:
    rss:      entry dicts produced by RSSFetcher
    youtube:  videos.list resources (id, snippet, statistics, contentDetails)
    twitter:  apidojo/tweet-scraper dataset items
    threads:  curious_coder/threads-scraper dataset items
    linkedin: Bright Data LinkedIn posts dataset items
"""

import html
import math
import re
from collections.abc import Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from pydantic import ValidationError

from src.ingestion.schemas import (
    MAX_TITLE_LENGTH,
    CreateContentInput,
    EngagementMetrics,
    MediaType,
    MediaUrl,
    Platform,
    ProcessingStatus,
    ReferencedContent,
    ReferenceType,
)

WORDS_PER_MINUTE = 200
DESCRIPTION_PREVIEW_CHARS = 300


# Field names holding the platform-native id, in lookup order.
_CONTENT_ID_FIELDS: dict[Platform, tuple[str, ...]] = {
    Platform.YOUTUBE: ("videoId", "id"),
    Platform.TWITTER: ("tweetId", "id"),
    Platform.LINKEDIN: ("postId", "id"),
    Platform.THREADS: ("postId", "id"),
    Platform.RSS: ("guid", "link"),
}

_TWITTER_DATE_FORMAT = "%a %b %d %H:%M:%S %z %Y"


class NormalizationError(Exception):
    """Raised when a raw item cannot be mapped to a valid content record."""

    def __init__(
        self,
        message: str,
        platform: Platform | str | None = None,
        platform_content_id: str | None = None,
    ):
        super().__init__(message)
        self.platform = platform
        self.platform_content_id = platform_content_id


# Text utilities

def calculate_word_count(text: str | None) -> int:
    """Count whitespace-separated tokens."""
    if not text:
        return 0
    return len(text.split())


def calculate_reading_time(text: str | None) -> int:
    """Estimate reading time in whole minutes at 200 words per minute."""
    words = calculate_word_count(text)
    if words == 0:
        return 0
    return math.ceil(words / WORDS_PER_MINUTE)


def extract_text_from_html(content: str | None) -> str:
    """Strip tags, unescape entities and collapse whitespace."""
    if not content:
        return ""
    soup = BeautifulSoup(content, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()
    text = html.unescape(soup.get_text(separator=" "))
    return " ".join(text.split())


def extract_image_sources(content: str | None) -> list[str]:
    """Return the src of every <img> tag in an HTML fragment."""
    if not content:
        return []
    soup = BeautifulSoup(content, "html.parser")
    return [img["src"] for img in soup.find_all("img", src=True) if img["src"]]


def generate_platform_content_id(platform: Platform | str, raw: dict[str, Any]) -> str:
    """
    Pick the platform-native identifier out of a raw item.

    Unknown platforms yield an empty string, which callers must treat as
    a normalization failure.
    """
    try:
        platform = Platform(platform)
    except ValueError:
        return ""

    for name in _CONTENT_ID_FIELDS[platform]:
        value = raw.get(name)
        if isinstance(value, dict):
            # YouTube search results nest the id: {"kind": ..., "videoId": ...}
            value = value.get("videoId")
        if value not in (None, ""):
            return str(value)
    return ""


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse the timestamp formats seen across platforms.

    Accepts datetimes, epoch seconds, ISO-8601 (with or without Z),
    RFC 2822 (RSS) and the legacy Twitter format.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)

    text = str(value).strip()
    if text.isdigit():
        return datetime.fromtimestamp(int(text), tz=timezone.utc)

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    try:
        return datetime.strptime(text, _TWITTER_DATE_FORMAT)
    except ValueError:
        pass

    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _clip(value: str | None, limit: int = MAX_TITLE_LENGTH) -> str | None:
    if value is None:
        return None
    return value if len(value) <= limit else value[: limit - 3].rstrip() + "..."


def _media_type_from_mime(mime: str | None) -> MediaType:
    mime = (mime or "").lower()
    if mime.startswith("image/"):
        return MediaType.IMAGE
    if mime.startswith("video/"):
        return MediaType.VIDEO
    if mime.startswith("audio/"):
        return MediaType.AUDIO
    return MediaType.DOCUMENT


def _domain(url: str | None) -> str | None:
    if not url:
        return None
    host = urlparse(url).hostname
    return host[4:] if host and host.startswith("www.") else host


class ContentNormalizer:
    """
    Maps raw platform items to CreateContentInput.

    Usage:
        normalizer = ContentNormalizer()
        record = normalizer.normalize(Platform.RSS, entry, creator_id, feed_url)
    """

    def __init__(self) -> None:
        self._handlers: dict[Platform, Callable[..., dict[str, Any]]] = {
            Platform.RSS: self._rss,
            Platform.YOUTUBE: self._youtube,
            Platform.TWITTER: self._twitter,
            Platform.THREADS: self._threads,
            Platform.LINKEDIN: self._linkedin,
        }

    def normalize(
        self,
        platform: Platform | str,
        raw: dict[str, Any],
        creator_id: str,
        source_url: str | None = None,
    ) -> CreateContentInput:
        """
        Normalize one raw item.

        Raises:
            NormalizationError: Unsupported platform, missing identifier,
                or a record that fails validation
        """
        try:
            platform = Platform(platform)
        except ValueError:
            raise NormalizationError(f"Unsupported platform: {platform}", platform)

        try:
            fields = self._handlers[platform](raw, source_url)
        except NormalizationError:
            raise
        except Exception as e:
            raise NormalizationError(
                f"Failed to normalize {platform.value} item: {e}", platform
            ) from e

        content_id = fields.get("platform_content_id") or ""
        if not content_id:
            raise NormalizationError(
                f"{platform.value} item has no platform content id", platform
            )

        try:
            return CreateContentInput(
                creator_id=creator_id,
                platform=platform,
                processing_status=ProcessingStatus.PROCESSED,
                **fields,
            )
        except ValidationError as e:
            raise NormalizationError(
                f"Invalid {platform.value} item {content_id}: "
                f"{e.errors()[0].get('msg', str(e))}",
                platform,
                content_id,
            ) from e

    def normalize_many(
        self,
        platform: Platform | str,
        items: list[dict[str, Any]],
        creator_id: str,
        source_url: str | None = None,
    ) -> tuple[list[CreateContentInput], list[NormalizationError]]:
        """Normalize a batch, collecting failures instead of raising."""
        records: list[CreateContentInput] = []
        failures: list[NormalizationError] = []
        for raw in items:
            try:
                records.append(self.normalize(platform, raw, creator_id, source_url))
            except NormalizationError as e:
                failures.append(e)
        return records, failures

    # RSS

    def _rss(self, raw: dict[str, Any], source_url: str | None) -> dict[str, Any]:
        body = raw.get("content") or raw.get("content_snippet") or ""
        text = extract_text_from_html(body)

        media: list[MediaUrl] = []
        enclosure = raw.get("enclosure")
        if enclosure and enclosure.get("url"):
            media.append(
                MediaUrl(
                    url=enclosure["url"],
                    type=_media_type_from_mime(enclosure.get("type")),
                    size=_to_int(enclosure.get("length")),
                )
            )
        for src in extract_image_sources(body):
            media.append(MediaUrl(url=src, type=MediaType.IMAGE))

        pub_date = raw.get("pub_date")
        content_id = generate_platform_content_id(Platform.RSS, raw)
        if not content_id and source_url:
            content_id = f"{source_url}_{pub_date or ''}"

        return {
            "platform_content_id": content_id,
            "url": raw.get("link") or source_url or "",
            "title": _clip(raw.get("title") or "Untitled"),
            "description": raw.get("content_snippet") or text[:DESCRIPTION_PREVIEW_CHARS],
            "published_at": parse_datetime(pub_date) or datetime.now(timezone.utc),
            "content_body": body,
            "word_count": calculate_word_count(text),
            "reading_time_minutes": calculate_reading_time(text),
            "media_urls": media,
            "engagement_metrics": EngagementMetrics(),
        }

    # YouTube

    def _youtube(self, raw: dict[str, Any], source_url: str | None) -> dict[str, Any]:
        video_id = generate_platform_content_id(Platform.YOUTUBE, raw)
        snippet = raw.get("snippet") or {}
        thumbnails = snippet.get("thumbnails") or {}
        thumb = thumbnails.get("high") or thumbnails.get("default") or {}
        description = snippet.get("description") or ""
        stats = raw.get("statistics") or {}
        details = raw.get("contentDetails") or {}

        media: list[MediaUrl] = []
        if video_id:
            media.append(
                MediaUrl(
                    url=f"https://www.youtube.com/watch?v={video_id}",
                    type=MediaType.VIDEO,
                    duration=parse_iso8601_duration(details.get("duration")),
                    thumbnail_url=thumb.get("url"),
                    width=_to_int(thumb.get("width")),
                    height=_to_int(thumb.get("height")),
                )
            )

        return {
            "platform_content_id": video_id,
            "url": f"https://www.youtube.com/watch?v={video_id}",
            "title": _clip(snippet.get("title") or "Untitled Video"),
            "description": description,
            "thumbnail_url": thumb.get("url"),
            "published_at": parse_datetime(snippet.get("publishedAt"))
            or datetime.now(timezone.utc),
            "content_body": description,
            "word_count": calculate_word_count(description),
            "reading_time_minutes": 0,
            "media_urls": media,
            "engagement_metrics": EngagementMetrics(
                views=_to_int(stats.get("viewCount")),
                likes=_to_int(stats.get("likeCount")),
                comments=_to_int(stats.get("commentCount")),
            ),
        }

    # Twitter (Apify tweet scraper)

    def _twitter(self, raw: dict[str, Any], source_url: str | None) -> dict[str, Any]:
        tweet_id = generate_platform_content_id(Platform.TWITTER, raw)
        text = raw.get("text") or raw.get("fullText") or ""
        author = raw.get("author") or {}

        media = _tweet_media(raw)
        media.extend(_tweet_link_previews(raw, media))

        reference_type, referenced = _tweet_reference(raw)

        return {
            "platform_content_id": tweet_id,
            "url": raw.get("url")
            or raw.get("twitterUrl")
            or f"https://twitter.com/i/status/{tweet_id}",
            "title": f"Tweet by @{author.get('userName') or 'unknown'}",
            "description": text,
            "published_at": parse_datetime(raw.get("createdAt"))
            or datetime.now(timezone.utc),
            "content_body": text,
            "word_count": calculate_word_count(text),
            "reading_time_minutes": calculate_reading_time(text),
            "media_urls": media,
            "engagement_metrics": EngagementMetrics(
                likes=_to_int(raw.get("likeCount")),
                comments=_to_int(raw.get("replyCount")),
                retweets=_to_int(raw.get("retweetCount")),
                quotes=_to_int(raw.get("quoteCount")),
                bookmarks=_to_int(raw.get("bookmarkCount")),
                views=_to_int(raw.get("viewCount")),
            ),
            "reference_type": reference_type,
            "referenced_content_id": referenced.platform_content_id if referenced else None,
            "referenced_content": referenced,
        }

    # Threads (Apify threads scraper)

    def _threads(self, raw: dict[str, Any], source_url: str | None) -> dict[str, Any]:
        post_id = str(raw.get("postId") or raw.get("id") or raw.get("pk") or "")
        caption = (raw.get("caption") or {}).get("text") or raw.get("text") or ""
        username = (raw.get("user") or {}).get("username") or "unknown"

        media = _threads_media(raw)
        for item in raw.get("carousel_media") or []:
            media.extend(_threads_media(item))

        reference_type, referenced = _threads_reference(raw)

        url = raw.get("url") or (
            f"https://www.threads.net/@{username}/post/{raw['code']}"
            if raw.get("code")
            else source_url or ""
        )

        return {
            "platform_content_id": post_id,
            "url": url,
            "title": f"Thread by @{username}",
            "description": caption,
            "published_at": parse_datetime(raw.get("taken_at"))
            or datetime.now(timezone.utc),
            "content_body": caption,
            "word_count": calculate_word_count(caption),
            "reading_time_minutes": calculate_reading_time(caption),
            "media_urls": media,
            "engagement_metrics": EngagementMetrics(
                likes=_to_int(raw.get("like_count")),
                comments=_to_int(raw.get("reply_count")),
            ),
            "reference_type": reference_type,
            "referenced_content_id": referenced.platform_content_id if referenced else None,
            "referenced_content": referenced,
        }

    # LinkedIn (Bright Data)

    def _linkedin(self, raw: dict[str, Any], source_url: str | None) -> dict[str, Any]:
        post_id = generate_platform_content_id(Platform.LINKEDIN, raw)
        if not raw.get("url"):
            raise NormalizationError(
                "LinkedIn post has no URL", Platform.LINKEDIN, post_id or None
            )

        text = raw.get("post_text") or ""
        body = raw.get("post_text_html") or text

        media: list[MediaUrl] = []
        for image in raw.get("images") or []:
            if image:
                media.append(MediaUrl(url=image, type=MediaType.IMAGE))
        for video in raw.get("videos") or []:
            video_url = video if isinstance(video, str) else (video or {}).get("url")
            if video_url:
                thumb = raw.get("video_thumbnail") or (
                    video.get("thumbnail") if isinstance(video, dict) else None
                )
                media.append(
                    MediaUrl(
                        url=video_url,
                        type=MediaType.VIDEO,
                        thumbnail_url=thumb,
                        duration=_to_int(raw.get("video_duration")),
                    )
                )
        link_data = raw.get("external_link_data") or {}
        for link in raw.get("embedded_links") or []:
            if link:
                media.append(
                    MediaUrl(
                        url=link,
                        type=MediaType.LINK_PREVIEW,
                        link_url=link,
                        link_title=link_data.get("title"),
                        link_description=link_data.get("description"),
                        link_domain=_domain(link),
                    )
                )
        if raw.get("document_cover_image"):
            pages = raw.get("document_page_count")
            media.append(
                MediaUrl(
                    url=raw["document_cover_image"],
                    type=MediaType.LINK_PREVIEW,
                    link_title="Document",
                    link_description=f"{pages} pages" if pages else None,
                )
            )

        reference_type = None
        referenced = None
        repost = raw.get("repost") or {}
        if repost.get("repost_id"):
            reference_type = ReferenceType.RETWEET
            referenced = ReferencedContent(
                platform_content_id=str(repost["repost_id"]),
                url=repost.get("repost_url"),
                text=repost.get("repost_text"),
                author={
                    "id": repost.get("repost_user_id"),
                    "name": repost.get("repost_user_name"),
                }
                if repost.get("repost_user_id")
                else None,
                created_at=parse_datetime(repost.get("repost_date")),
            )

        custom = {
            key: raw[key]
            for key in ("hashtags", "post_type", "account_type", "user_followers",
                        "author_profile_pic", "user_title")
            if raw.get(key) not in (None, "", [])
        }

        return {
            "platform_content_id": post_id,
            "url": raw["url"],
            "title": _clip(raw.get("title") or raw.get("headline") or "LinkedIn post"),
            "description": text,
            "published_at": parse_datetime(raw.get("date_posted"))
            or datetime.now(timezone.utc),
            "content_body": body,
            "word_count": calculate_word_count(text),
            "reading_time_minutes": calculate_reading_time(text),
            "media_urls": media,
            "engagement_metrics": EngagementMetrics(
                likes=_to_int(raw.get("num_likes")),
                comments=_to_int(raw.get("num_comments")),
                custom=custom,
            ),
            "reference_type": reference_type,
            "referenced_content_id": referenced.platform_content_id if referenced else None,
            "referenced_content": referenced,
        }


_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def parse_iso8601_duration(value: str | None) -> int | None:
    """Convert a YouTube ISO-8601 duration (PT1H2M3S) to seconds."""
    if not value:
        return None
    match = _DURATION_RE.match(value)
    if not match:
        return None
    parts = {k: int(v) for k, v in match.groupdict().items() if v}
    return (
        parts.get("days", 0) * 86400
        + parts.get("hours", 0) * 3600
        + parts.get("minutes", 0) * 60
        + parts.get("seconds", 0)
    )


def _best_mp4(media: dict[str, Any]) -> dict[str, Any] | None:
    variants = (media.get("video_info") or {}).get("variants") or []
    mp4s = [v for v in variants if v.get("content_type") == "video/mp4"]
    if not mp4s:
        return None
    return max(mp4s, key=lambda v: v.get("bitrate") or 0)


def _tweet_media(tweet: dict[str, Any]) -> list[MediaUrl]:
    media_urls: list[MediaUrl] = []
    for media in (tweet.get("extendedEntities") or {}).get("media") or []:
        large = (media.get("sizes") or {}).get("large") or {}
        preview = media.get("media_url_https") or media.get("url")
        if media.get("type") in ("video", "animated_gif"):
            best = _best_mp4(media)
            video_url = (best or {}).get("url") or preview
            if not video_url:
                continue
            millis = (media.get("video_info") or {}).get("duration_millis")
            media_urls.append(
                MediaUrl(
                    url=video_url,
                    type=MediaType.VIDEO,
                    thumbnail_url=preview,
                    width=_to_int(large.get("w")),
                    height=_to_int(large.get("h")),
                    duration=round(millis / 1000) if millis else None,
                )
            )
        elif preview:
            media_urls.append(
                MediaUrl(
                    url=preview,
                    type=MediaType.IMAGE,
                    width=_to_int(large.get("w")),
                    height=_to_int(large.get("h")),
                )
            )
    return media_urls


def _card_value(values: dict[str, Any], *names: str) -> Any:
    for name in names:
        value = values.get(name)
        if value:
            if isinstance(value, dict):
                return (
                    (value.get("image_value") or {}).get("url")
                    or value.get("string_value")
                    or value.get("scribe_key")
                )
            return value
    return None


def _tweet_link_previews(tweet: dict[str, Any], existing: list[MediaUrl]) -> list[MediaUrl]:
    previews: list[MediaUrl] = []

    card = tweet.get("card") or {}
    if "summary" in (card.get("name") or ""):
        values = card.get("binding_values") or card.get("values") or {}
        link_url = _card_value(values, "url", "website_url")
        title = _card_value(values, "title")
        image = _card_value(
            values, "thumbnail_image_large", "photo_image_full_size", "thumbnail_image"
        )
        if link_url and (title or image):
            previews.append(
                MediaUrl(
                    url=image or link_url,
                    type=MediaType.LINK_PREVIEW,
                    link_url=link_url,
                    link_title=title,
                    link_description=_card_value(values, "description"),
                    link_domain=_card_value(values, "domain", "vanity_url") or _domain(link_url),
                )
            )

    captured = {m.link_url for m in existing + previews if m.link_url}
    for entity in (tweet.get("entities") or {}).get("urls") or []:
        expanded = entity.get("expanded_url")
        if not expanded or expanded in captured:
            continue
        captured.add(expanded)
        previews.append(
            MediaUrl(
                url=expanded,
                type=MediaType.LINK_PREVIEW,
                link_url=expanded,
                link_title=entity.get("title") or entity.get("display_url"),
                link_description=entity.get("description"),
                link_domain=_domain(expanded),
            )
        )
    return previews


def _tweet_author(author: dict[str, Any] | None) -> dict[str, Any] | None:
    if not author:
        return None
    return {
        "id": author.get("id"),
        "username": author.get("userName"),
        "name": author.get("name"),
        "avatar_url": author.get("profilePicture"),
        "is_verified": author.get("isBlueVerified"),
    }


def _tweet_reference(
    tweet: dict[str, Any],
) -> tuple[ReferenceType | None, ReferencedContent | None]:
    for flag, key, ref_type in (
        ("isQuote", "quote", ReferenceType.QUOTE),
        ("isRetweet", "retweet", ReferenceType.RETWEET),
    ):
        inner = tweet.get(key)
        if tweet.get(flag) and isinstance(inner, dict) and inner.get("id"):
            return ref_type, ReferencedContent(
                platform_content_id=str(inner["id"]),
                url=inner.get("url") or inner.get("twitterUrl"),
                text=inner.get("text") or inner.get("fullText"),
                author=_tweet_author(inner.get("author")),
                created_at=parse_datetime(inner.get("createdAt")),
                media_urls=_tweet_media(inner),
            )

    if tweet.get("isReply") and tweet.get("inReplyToId"):
        username = tweet.get("inReplyToUsername")
        return ReferenceType.REPLY, ReferencedContent(
            platform_content_id=str(tweet["inReplyToId"]),
            author={"username": username} if username else None,
        )

    return None, None


def _threads_media(post: dict[str, Any]) -> list[MediaUrl]:
    """
    Extract media from a Threads post.

    Video posts carry the same asset as an image candidate too; only the
    video is kept for them, with the image as its thumbnail.
    """
    media: list[MediaUrl] = []
    candidates = (post.get("image_versions2") or {}).get("candidates") or []
    videos = post.get("video_versions") or []
    best_image = candidates[0] if candidates else None

    if best_image and best_image.get("url") and not videos:
        media.append(
            MediaUrl(
                url=best_image["url"],
                type=MediaType.IMAGE,
                width=_to_int(best_image.get("width")),
                height=_to_int(best_image.get("height")),
            )
        )
    if videos and videos[0].get("url"):
        media.append(
            MediaUrl(
                url=videos[0]["url"],
                type=MediaType.VIDEO,
                width=_to_int(videos[0].get("width")),
                height=_to_int(videos[0].get("height")),
                thumbnail_url=best_image.get("url") if best_image else None,
            )
        )
    return media


def _threads_author(user: dict[str, Any] | None) -> dict[str, Any] | None:
    if not user:
        return None
    return {
        "id": user.get("pk") or user.get("id"),
        "username": user.get("username"),
        "name": user.get("full_name") or user.get("name"),
        "avatar_url": user.get("profile_pic_url"),
        "is_verified": user.get("is_verified"),
    }


def _threads_reference(
    post: dict[str, Any],
) -> tuple[ReferenceType | None, ReferencedContent | None]:
    app_info = post.get("text_post_app_info") or {}
    share_info = app_info.get("share_info") or {}

    for key, ref_type in (
        ("quoted_post", ReferenceType.QUOTE),
        ("reposted_post", ReferenceType.RETWEET),
    ):
        inner = share_info.get(key)
        if not inner:
            continue
        username = (inner.get("user") or {}).get("username")
        return ref_type, ReferencedContent(
            platform_content_id=str(inner.get("id") or inner.get("pk") or ""),
            url=f"https://www.threads.net/@{username}/post/{inner['code']}"
            if inner.get("code")
            else None,
            text=(inner.get("caption") or {}).get("text") or inner.get("text"),
            author=_threads_author(inner.get("user")),
            created_at=parse_datetime(inner.get("taken_at")),
            media_urls=_threads_media(inner),
        )

    reply_to = app_info.get("reply_to_author")
    if reply_to:
        return ReferenceType.REPLY, ReferencedContent(
            platform_content_id="",
            author={
                "username": reply_to.get("username"),
                "name": reply_to.get("full_name"),
            },
        )

    return None, None
