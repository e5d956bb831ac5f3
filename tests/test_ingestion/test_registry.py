"""Tests for the fetcher registry and credential gating."""

import pytest

from src.ingestion.apify_fetcher import ThreadsFetcher, TwitterFetcher
from src.ingestion.base_fetcher import FetcherNotConfiguredError
from src.ingestion.brightdata_fetcher import LinkedInFetcher
from src.ingestion.http_client import HTTPClient
from src.ingestion.registry import FetcherRegistry, FetcherSpec, build_default_registry
from src.ingestion.rss_fetcher import RSSFetcher
from src.ingestion.schemas import Platform
from src.ingestion.youtube_fetcher import YouTubeFetcher


class TestDefaultRegistry:
    def test_all_platforms_registered(self, bare_settings):
        registry = build_default_registry(bare_settings, HTTPClient())

        assert set(registry.platforms) == set(Platform)

    def test_only_rss_configured_without_credentials(self, bare_settings):
        registry = build_default_registry(bare_settings, HTTPClient())

        assert registry.configured_platforms() == [Platform.RSS]
        assert isinstance(registry.get(Platform.RSS), RSSFetcher)

    @pytest.mark.parametrize(
        "platform,env_var",
        [
            (Platform.YOUTUBE, "YOUTUBE_API_KEY"),
            (Platform.TWITTER, "APIFY_API_KEY"),
            (Platform.THREADS, "APIFY_API_KEY"),
            (Platform.LINKEDIN, "BRIGHTDATA_API_KEY"),
        ],
    )
    def test_missing_credential_names_env_var(self, bare_settings, platform, env_var):
        registry = build_default_registry(bare_settings, HTTPClient())

        with pytest.raises(FetcherNotConfiguredError) as exc_info:
            registry.get(platform)

        assert exc_info.value.platform == platform
        assert exc_info.value.env_var == env_var
        assert f"Please add {env_var} to environment variables." in str(exc_info.value)

    def test_youtube_message(self, bare_settings):
        registry = build_default_registry(bare_settings, HTTPClient())

        with pytest.raises(FetcherNotConfiguredError) as exc_info:
            registry.get("youtube")

        assert str(exc_info.value) == (
            "YouTube API not configured. Please add YOUTUBE_API_KEY to environment variables."
        )

    def test_configured_builds_each_fetcher_once(self, test_settings):
        registry = build_default_registry(test_settings, HTTPClient())

        assert isinstance(registry.get(Platform.YOUTUBE), YouTubeFetcher)
        assert isinstance(registry.get(Platform.TWITTER), TwitterFetcher)
        assert isinstance(registry.get(Platform.THREADS), ThreadsFetcher)
        assert isinstance(registry.get(Platform.LINKEDIN), LinkedInFetcher)
        assert registry.get(Platform.TWITTER) is registry.get(Platform.TWITTER)
        assert set(registry.configured_platforms()) == set(Platform)


class TestCustomSpecs:
    def test_register_replaces_cached_instance(self, test_settings):
        http = HTTPClient()
        registry = FetcherRegistry(test_settings, http)
        registry.register(FetcherSpec(Platform.RSS, lambda s, h, c: RSSFetcher(h, "a"), "RSS"))
        first = registry.get(Platform.RSS)

        registry.register(FetcherSpec(Platform.RSS, lambda s, h, c: RSSFetcher(h, "b"), "RSS"))

        assert registry.get(Platform.RSS) is not first

    def test_unregistered_platform(self, test_settings):
        registry = FetcherRegistry(test_settings, HTTPClient())

        with pytest.raises(KeyError):
            registry.get(Platform.LINKEDIN)


class TestYouTubeOAuth:
    def test_client_credentials_configure_youtube(self, bare_settings):
        settings = bare_settings.model_copy(
            update={
                "youtube_client_id": "client.apps.googleusercontent.com",
                "youtube_client_secret": "secret",
                "youtube_refresh_token": "refresh",
            }
        )
        registry = build_default_registry(settings, HTTPClient())

        fetcher = registry.get(Platform.YOUTUBE)

        assert settings.youtube_configured
        assert fetcher._api_key is None
        assert fetcher._oauth.client_id == "client.apps.googleusercontent.com"
        assert fetcher._oauth.refresh_token == "refresh"

    def test_client_id_alone_is_not_enough(self, bare_settings):
        settings = bare_settings.model_copy(update={"youtube_client_id": "client"})

        assert not settings.youtube_configured
        with pytest.raises(FetcherNotConfiguredError):
            build_default_registry(settings, HTTPClient()).get(Platform.YOUTUBE)

    def test_api_key_only_has_no_oauth(self, test_settings):
        fetcher = build_default_registry(test_settings, HTTPClient()).get(Platform.YOUTUBE)

        assert fetcher._api_key == "yt-test-key"
        assert fetcher._oauth is None
