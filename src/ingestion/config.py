"""
Fetcher configuration.

Per-platform caps, incremental window policy and scraper polling knobs.
Overridable via environment variables prefixed with INGESTION_.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class IngestionConfig(BaseSettings):
    """Configuration for the source fetchers."""

    model_config = SettingsConfigDict(
        env_prefix="INGESTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # RSS
    rss_manual_max_results: int = Field(
        default=10,
        ge=1,
        description="Items kept per feed on manual refresh",
    )
    rss_cron_max_results: int = Field(
        default=20,
        ge=1,
        description="Items kept per feed on scheduled refresh",
    )
    rss_user_agent: str = Field(
        default="Mozilla/5.0 (compatible; ContentTracker/1.0; +https://github.com/content-tracker)",
        description="User-Agent sent when downloading feeds",
    )

    # YouTube window policy
    youtube_incremental_max_results: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Videos requested when a previous fetch exists",
    )
    youtube_initial_max_results: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Videos requested on a creator's first fetch",
    )
    youtube_initial_lookback_days: int = Field(
        default=7,
        ge=1,
        description="publishedAfter window for first fetch",
    )
    youtube_min_duration_seconds: int = Field(
        default=60,
        ge=0,
        description="Videos at or below this duration are treated as Shorts and skipped",
    )

    # Apify (Twitter, Threads)
    twitter_max_results: int = Field(default=20, ge=1)
    twitter_default_lookback_days: int = Field(
        default=60,
        ge=1,
        description="since: window when a creator has never been fetched",
    )
    twitter_actor_id: str = "apidojo/tweet-scraper"
    threads_max_results: int = Field(default=10, ge=1)
    threads_actor_id: str = "curious_coder/threads-scraper"
    apify_poll_interval_seconds: float = Field(default=5.0, gt=0)
    apify_run_timeout_seconds: float = Field(default=300.0, gt=0)

    # Bright Data (LinkedIn)
    linkedin_max_results: int = Field(default=10, ge=1)
    linkedin_lookback_days: int = Field(default=1, ge=1)
    linkedin_dataset_id: str = Field(
        default="gd_lyy3tktm25m4avu764",
        description="Bright Data LinkedIn posts dataset",
    )
    brightdata_poll_interval_seconds: float = Field(default=5.0, gt=0)
    brightdata_timeout_seconds: float = Field(default=300.0, gt=0)
