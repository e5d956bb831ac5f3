"""
Platform detection for creator source URLs.

Classifies a raw URL into a Platform plus the platform-native user
identifier and a canonical profile URL. Pure string/regex logic, no I/O.

Patterns are matched against the lowercased URL in registration order;
the captured identifier is re-read from the original URL so casing is
preserved (YouTube channel ids are case-sensitive).
"""

import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from src.ingestion.schemas import Platform

# Ordered: the first platform whose pattern matches wins.
_PATTERNS: list[tuple[Platform, list[re.Pattern[str]]]] = [
    (
        Platform.YOUTUBE,
        [
            re.compile(r"^https?://(?:www\.)?youtube\.com/channel/([a-zA-Z0-9_-]+)"),
            re.compile(r"^https?://(?:www\.)?youtube\.com/@([a-zA-Z0-9_-]+)"),
            re.compile(r"^https?://(?:www\.)?youtube\.com/c/([a-zA-Z0-9_-]+)"),
            re.compile(r"^https?://(?:www\.)?youtube\.com/user/([a-zA-Z0-9_-]+)"),
        ],
    ),
    (
        Platform.TWITTER,
        [
            re.compile(r"^https?://(?:www\.)?twitter\.com/([a-zA-Z0-9_]+)"),
            re.compile(r"^https?://(?:www\.)?x\.com/([a-zA-Z0-9_]+)"),
        ],
    ),
    (
        Platform.LINKEDIN,
        [
            re.compile(r"^https?://(?:www\.)?linkedin\.com/in/([a-zA-Z0-9-]+)"),
            re.compile(r"^https?://(?:www\.)?linkedin\.com/company/([a-zA-Z0-9-]+)"),
        ],
    ),
    (
        Platform.THREADS,
        [
            re.compile(r"^https?://(?:www\.)?threads\.(?:com|net)/@([a-zA-Z0-9._]+)"),
            re.compile(r"^https?://(?:www\.)?threads\.(?:com|net)/t/[a-zA-Z0-9_-]+"),
        ],
    ),
    (
        Platform.RSS,
        [
            re.compile(r"\.(rss|xml|atom)(?:\?.*)?$"),
            re.compile(r"/feed/?(?:\?.*)?$"),
            re.compile(r"/rss/?(?:\?.*)?$"),
            re.compile(r"/atom/?(?:\?.*)?$"),
        ],
    ),
]

THREADS_POST_USER_ID = "threads-post"


class PlatformDetectionError(Exception):
    """Raised when a URL cannot be classified."""

    INVALID_URL = "INVALID_URL"
    UNSUPPORTED_PLATFORM = "UNSUPPORTED_PLATFORM"
    PARSE_ERROR = "PARSE_ERROR"

    def __init__(self, code: str, message: str, url: str | None = None):
        super().__init__(message)
        self.code = code
        self.url = url


@dataclass(frozen=True)
class PlatformInfo:
    """Result of classifying a URL."""

    platform: Platform
    platform_user_id: str
    profile_url: str
    metadata: dict[str, Any] = field(default_factory=dict)


def _is_valid_url(url: str) -> bool:
    if not url or any(c.isspace() for c in url):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_youtube_channel_id(value: str) -> bool:
    return value.startswith("UC") and len(value) == 24


def _feed_type(url: str) -> str:
    return "atom" if "atom" in url.lower() else "rss"


def _feed_domain(url: str) -> str:
    hostname = urlparse(url).hostname or "unknown"
    return re.sub(r"^www\.", "", hostname)


def _build_info(platform: Platform, url: str, user_id: str) -> PlatformInfo:
    if platform == Platform.YOUTUBE:
        if is_youtube_channel_id(user_id):
            metadata = {"channel_id": user_id}
        else:
            metadata = {"username": user_id}
        return PlatformInfo(platform, user_id, url, metadata)

    if platform == Platform.TWITTER:
        return PlatformInfo(platform, user_id, url, {"username": user_id})

    if platform == Platform.LINKEDIN:
        key = "company_id" if "/company/" in url.lower() else "username"
        return PlatformInfo(platform, user_id, url, {key: user_id})

    if platform == Platform.THREADS:
        if not user_id:
            # Bare /t/<id> post links carry no username.
            return PlatformInfo(platform, THREADS_POST_USER_ID, url, {})
        return PlatformInfo(
            platform,
            user_id,
            f"https://www.threads.com/@{user_id}",
            {"username": user_id},
        )

    if platform == Platform.RSS:
        return PlatformInfo(
            platform,
            _feed_domain(url),
            url,
            {"feed_url": url, "feed_type": _feed_type(url)},
        )

    raise PlatformDetectionError(
        PlatformDetectionError.PARSE_ERROR,
        "Failed to extract platform information",
        url,
    )


def detect(url: str) -> PlatformInfo:
    """
    Classify a URL into a platform and canonical identifier.

    Args:
        url: Raw URL as entered by a curator

    Returns:
        PlatformInfo for the first matching platform

    Raises:
        PlatformDetectionError: INVALID_URL for malformed input,
            UNSUPPORTED_PLATFORM when nothing matches
    """
    trimmed = (url or "").strip()
    if not _is_valid_url(trimmed):
        raise PlatformDetectionError(
            PlatformDetectionError.INVALID_URL, "Invalid URL format", url
        )

    lowered = trimmed.lower()
    for platform, patterns in _PATTERNS:
        for pattern in patterns:
            if not pattern.search(lowered):
                continue
            original = re.search(pattern.pattern, trimmed, re.IGNORECASE)
            user_id = ""
            if original and original.groups():
                user_id = original.group(1) or ""
            try:
                return _build_info(platform, trimmed, user_id)
            except PlatformDetectionError:
                raise
            except Exception as e:
                raise PlatformDetectionError(
                    PlatformDetectionError.PARSE_ERROR, str(e), url
                ) from e

    raise PlatformDetectionError(
        PlatformDetectionError.UNSUPPORTED_PLATFORM,
        "URL does not match any supported platform",
        url,
    )


def try_detect(url: str) -> PlatformInfo | None:
    """Detect a platform, returning None instead of raising."""
    try:
        return detect(url)
    except PlatformDetectionError:
        return None


def check_platform_mismatch(declared: Platform | str, url: str) -> str | None:
    """
    Compare a declared platform with what detection infers from the URL.

    The declared platform stays authoritative; this only reports the
    disagreement so callers can surface it.

    Returns:
        Human-readable warning, or None when they agree or the URL is
        not detectable
    """
    declared_value = declared.value if isinstance(declared, Platform) else str(declared)
    info = try_detect(url)
    if info is None or info.platform.value == declared_value:
        return None
    return (
        f"URL looks like {info.platform.value} but is registered as {declared_value}"
    )
