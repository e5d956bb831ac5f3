"""
Fetcher registry: Platform -> fetcher construction and credential gating.

Adding a platform means registering one FetcherSpec; nothing downstream
branches on platform names.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from src.config.settings import Settings
from src.ingestion.apify_fetcher import ThreadsFetcher, TwitterFetcher
from src.ingestion.base_fetcher import BaseFetcher, FetcherNotConfiguredError
from src.ingestion.brightdata_fetcher import LinkedInFetcher
from src.ingestion.config import IngestionConfig
from src.ingestion.http_client import HTTPClient
from src.ingestion.rss_fetcher import RSSFetcher
from src.ingestion.schemas import Platform
from src.ingestion.youtube_fetcher import YouTubeFetcher, YouTubeOAuthCredentials

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[Settings, HTTPClient, IngestionConfig], BaseFetcher]


@dataclass(frozen=True)
class FetcherSpec:
    """How to build a fetcher and which credential it needs."""

    platform: Platform
    factory: FetcherFactory
    display_name: str
    credential_env_var: str | None = None
    is_configured: Callable[[Settings], bool] = lambda settings: True


class FetcherRegistry:
    """
    Resolves a Platform to a ready fetcher.

    Fetchers are built lazily and cached for the lifetime of the registry,
    which is normally one refresh run sharing one HTTPClient.
    """

    def __init__(
        self,
        settings: Settings,
        http: HTTPClient,
        config: IngestionConfig | None = None,
    ):
        self._settings = settings
        self._http = http
        self._config = config or IngestionConfig()
        self._specs: dict[Platform, FetcherSpec] = {}
        self._instances: dict[Platform, BaseFetcher] = {}

    def register(self, spec: FetcherSpec) -> None:
        self._specs[spec.platform] = spec
        self._instances.pop(spec.platform, None)

    def spec(self, platform: Platform | str) -> FetcherSpec:
        platform = Platform(platform)
        try:
            return self._specs[platform]
        except KeyError:
            raise KeyError(f"No fetcher registered for platform {platform.value}") from None

    def is_configured(self, platform: Platform | str) -> bool:
        return self.spec(platform).is_configured(self._settings)

    def get(self, platform: Platform | str) -> BaseFetcher:
        """
        Return the fetcher for a platform.

        Raises:
            FetcherNotConfiguredError: The platform's credential is missing
            KeyError: Nothing registered for the platform
        """
        spec = self.spec(platform)
        if not spec.is_configured(self._settings):
            raise FetcherNotConfiguredError(
                spec.platform, spec.display_name, spec.credential_env_var or "credentials"
            )

        fetcher = self._instances.get(spec.platform)
        if fetcher is None:
            fetcher = spec.factory(self._settings, self._http, self._config)
            self._instances[spec.platform] = fetcher
            logger.debug(f"Built {fetcher.name}")
        return fetcher

    @property
    def platforms(self) -> list[Platform]:
        return list(self._specs)

    def configured_platforms(self) -> list[Platform]:
        return [p for p, spec in self._specs.items() if spec.is_configured(self._settings)]


def _rss(settings: Settings, http: HTTPClient, config: IngestionConfig) -> BaseFetcher:
    return RSSFetcher(http, user_agent=config.rss_user_agent)


def _youtube(settings: Settings, http: HTTPClient, config: IngestionConfig) -> BaseFetcher:
    oauth = None
    if settings.youtube_oauth_configured:
        oauth = YouTubeOAuthCredentials(
            client_id=settings.youtube_client_id,
            client_secret=settings.youtube_client_secret,
            refresh_token=settings.youtube_refresh_token,
        )
    return YouTubeFetcher(
        http,
        api_key=settings.youtube_api_key,
        oauth=oauth,
        min_duration_seconds=config.youtube_min_duration_seconds,
    )


def _twitter(settings: Settings, http: HTTPClient, config: IngestionConfig) -> BaseFetcher:
    return TwitterFetcher(
        http,
        settings.apify_api_key,
        config.twitter_actor_id,
        poll_interval=config.apify_poll_interval_seconds,
        run_timeout=config.apify_run_timeout_seconds,
        default_lookback_days=config.twitter_default_lookback_days,
    )


def _threads(settings: Settings, http: HTTPClient, config: IngestionConfig) -> BaseFetcher:
    return ThreadsFetcher(
        http,
        settings.apify_api_key,
        config.threads_actor_id,
        poll_interval=config.apify_poll_interval_seconds,
        run_timeout=config.apify_run_timeout_seconds,
    )


def _linkedin(settings: Settings, http: HTTPClient, config: IngestionConfig) -> BaseFetcher:
    return LinkedInFetcher(
        http,
        settings.brightdata_api_key,
        dataset_id=config.linkedin_dataset_id,
        lookback_days=config.linkedin_lookback_days,
        poll_interval=config.brightdata_poll_interval_seconds,
        timeout=config.brightdata_timeout_seconds,
    )


DEFAULT_SPECS: tuple[FetcherSpec, ...] = (
    FetcherSpec(Platform.RSS, _rss, "RSS"),
    FetcherSpec(
        Platform.YOUTUBE,
        _youtube,
        "YouTube API",
        "YOUTUBE_API_KEY",
        lambda s: s.youtube_configured,
    ),
    FetcherSpec(
        Platform.TWITTER,
        _twitter,
        "Twitter (Apify)",
        "APIFY_API_KEY",
        lambda s: s.apify_configured,
    ),
    FetcherSpec(
        Platform.THREADS,
        _threads,
        "Threads (Apify)",
        "APIFY_API_KEY",
        lambda s: s.apify_configured,
    ),
    FetcherSpec(
        Platform.LINKEDIN,
        _linkedin,
        "LinkedIn (Bright Data)",
        "BRIGHTDATA_API_KEY",
        lambda s: s.brightdata_configured,
    ),
)


def build_default_registry(
    settings: Settings,
    http: HTTPClient,
    config: IngestionConfig | None = None,
    specs: Iterable[FetcherSpec] = DEFAULT_SPECS,
) -> FetcherRegistry:
    """Registry with every supported platform."""
    registry = FetcherRegistry(settings, http, config)
    for spec in specs:
        registry.register(spec)
    return registry
