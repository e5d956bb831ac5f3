"""
YouTube Data API v3 fetcher.

Flow per channel:
    1. Resolve the channel id (direct /channel/UC... or search by handle)
    2. channels.list -> uploads playlist
    3. playlistItems.list -> recent video ids, filtered by publishedAfter
    4. videos.list -> snippet, statistics, contentDetails

Shorts (<= 60s) are dropped. The caller owns the window policy.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

from src.ingestion.base_fetcher import BaseFetcher, FetcherError, FetchOptions
from src.ingestion.http_client import HTTPClient, HTTPClientError
from src.ingestion.normalizer import parse_datetime, parse_iso8601_duration
from src.ingestion.platform_detector import PlatformDetectionError, detect
from src.ingestion.schemas import Platform

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
TOKEN_EXPIRY_MARGIN_SECONDS = 60

ERROR_MESSAGES = {
    FetcherError.CHANNEL_NOT_FOUND: "YouTube channel not found",
    FetcherError.QUOTA_EXCEEDED: "YouTube API quota exceeded",
    FetcherError.INVALID_API_KEY: "Invalid YouTube API key",
    FetcherError.INVALID_ACCESS_TOKEN: "Invalid or expired YouTube access token",
    FetcherError.FORBIDDEN: "Access to YouTube resource forbidden",
    FetcherError.FETCH_FAILED: "YouTube request failed",
}


def map_youtube_error(error: HTTPClientError) -> FetcherError:
    """Translate an HTTP failure from the Data API into a FetcherError."""
    body = (error.response_body or "").lower()
    status = error.status_code

    if status == 400 and "api key" in body:
        code = FetcherError.INVALID_API_KEY
    elif status == 401:
        code = FetcherError.INVALID_ACCESS_TOKEN
    elif status == 403 and "quota" in body:
        code = FetcherError.QUOTA_EXCEEDED
    elif status == 403:
        code = FetcherError.FORBIDDEN
    elif status == 404:
        code = FetcherError.CHANNEL_NOT_FOUND
    else:
        code = FetcherError.FETCH_FAILED

    return FetcherError(code, f"{ERROR_MESSAGES[code]}: {error}")


@dataclass(frozen=True)
class YouTubeOAuthCredentials:
    """Google OAuth client plus a long-lived refresh token."""

    client_id: str
    client_secret: str
    refresh_token: str


class YouTubeFetcher(BaseFetcher):
    """
    Fetches recent uploads for a YouTube channel URL.

    Auth is an API key (public data), a fixed OAuth access token, or OAuth
    client credentials with a refresh token. With client credentials an
    access token is obtained from Google on first use and renewed shortly
    before it expires. A token, when present, is preferred over the key.
    """

    def __init__(
        self,
        http: HTTPClient,
        api_key: str | None = None,
        access_token: str | None = None,
        oauth: YouTubeOAuthCredentials | None = None,
        min_duration_seconds: int = 60,
    ):
        super().__init__(http)
        if not api_key and not access_token and not oauth:
            raise ValueError(
                "Either an API key, an access token or OAuth client credentials "
                "must be provided"
            )
        self._api_key = api_key
        self._access_token = access_token
        self._oauth = oauth
        self._token_expires_at = float("inf") if access_token else 0.0
        self._min_duration = min_duration_seconds

    @property
    def platform(self) -> Platform:
        return Platform.YOUTUBE

    async def _fetch_raw(self, source_url: str, options: FetchOptions) -> list[dict[str, Any]]:
        try:
            channel_id = await self.resolve_channel_id(source_url)
            playlist_id = await self._uploads_playlist(channel_id)
            video_ids = await self._recent_video_ids(playlist_id, options)
            if not video_ids:
                logger.debug(f"No new videos for channel {channel_id}")
                return []
            videos = await self._video_details(video_ids)
        except HTTPClientError as e:
            raise map_youtube_error(e) from e

        if options.since:
            videos = [
                v for v in videos
                if (published := parse_datetime(v.get("snippet", {}).get("publishedAt"))) is None
                or published > options.since
            ]

        return [v for v in videos if not self._is_short(v)]

    async def resolve_channel_id(self, source_url: str) -> str:
        """Return the UC... channel id for a channel URL."""
        try:
            info = detect(source_url)
        except PlatformDetectionError as e:
            raise FetcherError(FetcherError.CHANNEL_NOT_FOUND, f"Invalid YouTube channel URL: {e}")

        if info.platform != Platform.YOUTUBE:
            raise FetcherError(
                FetcherError.CHANNEL_NOT_FOUND,
                f"Not a YouTube channel URL: {source_url}",
            )

        if "channel_id" in info.metadata:
            return info.metadata["channel_id"]

        data = await self._api_get(
            "search",
            {"part": "snippet", "q": info.platform_user_id, "type": "channel", "maxResults": 1},
        )
        items = data.get("items") or []
        channel_id = items[0].get("snippet", {}).get("channelId") if items else None
        if not channel_id:
            raise FetcherError(
                FetcherError.CHANNEL_NOT_FOUND,
                f"{ERROR_MESSAGES[FetcherError.CHANNEL_NOT_FOUND]}: {info.platform_user_id}",
            )
        return channel_id

    async def _uploads_playlist(self, channel_id: str) -> str:
        data = await self._api_get("channels", {"part": "contentDetails", "id": channel_id})
        items = data.get("items") or []
        if not items:
            raise FetcherError(
                FetcherError.CHANNEL_NOT_FOUND,
                f"{ERROR_MESSAGES[FetcherError.CHANNEL_NOT_FOUND]}: {channel_id}",
            )
        uploads = (
            items[0].get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads")
        )
        if not uploads:
            raise FetcherError(
                FetcherError.CHANNEL_NOT_FOUND, "Channel has no uploads playlist"
            )
        return uploads

    async def _recent_video_ids(self, playlist_id: str, options: FetchOptions) -> list[str]:
        data = await self._api_get(
            "playlistItems",
            {
                "part": "snippet,contentDetails",
                "playlistId": playlist_id,
                "maxResults": min(options.max_results, 50),
            },
        )
        video_ids = []
        for item in data.get("items") or []:
            published = parse_datetime(item.get("snippet", {}).get("publishedAt"))
            # Filter before videos.list to save quota
            if options.since and published and published <= options.since:
                continue
            video_id = item.get("contentDetails", {}).get("videoId")
            if video_id:
                video_ids.append(video_id)
        return video_ids

    async def _video_details(self, video_ids: list[str]) -> list[dict[str, Any]]:
        data = await self._api_get(
            "videos",
            {"part": "snippet,statistics,contentDetails", "id": ",".join(video_ids)},
        )
        return data.get("items") or []

    def _is_short(self, video: dict[str, Any]) -> bool:
        duration = parse_iso8601_duration(video.get("contentDetails", {}).get("duration"))
        if duration is None:
            return False
        return duration <= self._min_duration

    async def _api_get(self, resource: str, params: dict[str, Any]) -> dict[str, Any]:
        headers = None
        if self._oauth or self._access_token:
            headers = {"Authorization": f"Bearer {await self._valid_access_token()}"}
        else:
            params = {**params, "key": self._api_key}
        response = await self._http.get(
            f"{YOUTUBE_API_BASE}/{resource}", params=params, headers=headers
        )
        return response.json()

    async def _valid_access_token(self) -> str:
        if self._oauth and (
            not self._access_token or time.monotonic() >= self._token_expires_at
        ):
            await self._refresh_access_token()
        return self._access_token

    async def _refresh_access_token(self) -> None:
        """Exchange the refresh token for a new access token."""
        try:
            response = await self._http.post(
                GOOGLE_TOKEN_URL,
                form={
                    "client_id": self._oauth.client_id,
                    "client_secret": self._oauth.client_secret,
                    "refresh_token": self._oauth.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
            payload = response.json()
        except HTTPClientError as e:
            raise FetcherError(
                FetcherError.INVALID_ACCESS_TOKEN,
                f"{ERROR_MESSAGES[FetcherError.INVALID_ACCESS_TOKEN]}: {e}",
            ) from e

        token = payload.get("access_token")
        if not token:
            raise FetcherError(
                FetcherError.INVALID_ACCESS_TOKEN,
                f"{ERROR_MESSAGES[FetcherError.INVALID_ACCESS_TOKEN]}: "
                "no access_token in response",
            )
        expires_in = int(payload.get("expires_in") or 3600)
        self._access_token = token
        lifetime = max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0)
        self._token_expires_at = time.monotonic() + lifetime
        logger.info(f"Obtained YouTube access token valid for {expires_in}s")
