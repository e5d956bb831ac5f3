"""Tests for the typed FetchState model."""

from datetime import datetime, timezone

from src.creators.schemas import FETCH_STATE_SCHEMA_VERSION, Creator, CreatorUrl, FetchState
from src.ingestion.schemas import Platform

JAN = datetime(2025, 1, 1, tzinfo=timezone.utc)
FEB = datetime(2025, 2, 1, tzinfo=timezone.utc)


class TestFromMetadata:
    def test_legacy_iso_strings(self):
        state = FetchState.from_metadata(
            {
                "last_youtube_fetch": "2025-01-01T00:00:00Z",
                "last_linkedin_count": 4,
                "unrelated": "ignored",
            }
        )

        assert state.last_youtube_fetch == JAN
        assert state.last_linkedin_count == 4
        assert state.version == 0

    def test_unparseable_values_dropped(self):
        state = FetchState.from_metadata(
            {"last_twitter_fetch": "not a date", "last_rss_fetch": "2025-02-01T00:00:00+00:00"}
        )

        assert state.last_twitter_fetch is None
        assert state.last_rss_fetch == FEB

    def test_empty(self):
        assert FetchState.from_metadata(None) == FetchState()


class TestFromDb:
    def test_current_schema_used(self):
        stored = FetchState(version=3, last_threads_fetch=FEB).to_db()

        state = FetchState.from_db(stored, {"last_threads_fetch": "2024-01-01T00:00:00Z"})

        assert state.version == 3
        assert state.last_threads_fetch == FEB

    def test_falls_back_to_metadata(self):
        state = FetchState.from_db({}, {"last_fetched_at": "2025-01-01T00:00:00Z"})

        assert state.schema_version == FETCH_STATE_SCHEMA_VERSION
        assert state.last_fetched_at == JAN

    def test_default_column_value_uses_legacy_metadata(self):
        state = FetchState.from_db(
            {"schema_version": 1, "version": 0},
            {
                "last_youtube_fetch": "2025-01-01T00:00:00Z",
                "last_fetched_at": "2025-01-01T00:00:00Z",
                "last_linkedin_count": 2,
            },
        )

        assert state.last_youtube_fetch == JAN
        assert state.last_fetched_at == JAN
        assert state.last_linkedin_count == 2
        assert state.version == 0

    def test_written_state_ignores_legacy_metadata(self):
        stored = FetchState(version=1, last_rss_fetch=FEB).to_db()

        state = FetchState.from_db(stored, {"last_youtube_fetch": "2025-01-01T00:00:00Z"})

        assert state.last_youtube_fetch is None
        assert state.last_rss_fetch == FEB

    def test_invalid_fields_dropped(self, caplog):
        stored = {
            "schema_version": 1,
            "version": 4,
            "last_youtube_fetch": "not-a-date",
            "last_rss_fetch": "2025-02-01T00:00:00Z",
            "last_linkedin_count": -3,
        }

        with caplog.at_level("WARNING", logger="src.creators.schemas"):
            state = FetchState.from_db(stored)

        assert state.version == 4
        assert state.last_youtube_fetch is None
        assert state.last_rss_fetch == FEB
        assert state.last_linkedin_count is None
        assert "last_youtube_fetch" in caplog.text


class TestMergedWith:
    def test_newer_timestamps_win_and_version_max(self):
        stored = FetchState(version=5, last_youtube_fetch=FEB, last_rss_fetch=JAN)
        incoming = FetchState(version=2, last_youtube_fetch=JAN, last_rss_fetch=FEB, last_twitter_fetch=JAN)

        merged = stored.merged_with(incoming)

        assert merged.last_youtube_fetch == FEB
        assert merged.last_rss_fetch == FEB
        assert merged.last_twitter_fetch == JAN
        assert merged.version == 5

    def test_counts_and_stats_come_from_incoming(self):
        stored = FetchState(last_linkedin_count=3, last_fetch_stats={"old": 1})
        incoming = FetchState(last_linkedin_count=0, last_fetch_stats={"new": 2})

        merged = stored.merged_with(incoming)

        assert merged.last_linkedin_count == 0
        assert merged.last_fetch_stats == {"new": 2}

    def test_missing_incoming_values_keep_stored(self):
        stored = FetchState(last_linkedin_count=3, last_fetch_stats={"old": 1})

        merged = stored.merged_with(FetchState())

        assert merged.last_linkedin_count == 3
        assert merged.last_fetch_stats == {"old": 1}


def test_platform_fetch_lookup():
    state = FetchState(last_linkedin_fetch=JAN)

    assert state.platform_fetch(Platform.LINKEDIN) == JAN
    assert state.platform_fetch("youtube") is None


def test_urls_for_filters_by_platform():
    creator = Creator(
        id="c",
        display_name="C",
        urls=[
            CreatorUrl(creator_id="c", platform=Platform.RSS, url="https://e.com/feed"),
            CreatorUrl(creator_id="c", platform=Platform.TWITTER, url="https://x.com/c"),
        ],
    )

    assert [u.platform for u in creator.urls_for({Platform.TWITTER})] == [Platform.TWITTER]
    assert len(creator.urls_for(None)) == 2
