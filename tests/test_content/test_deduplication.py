"""Tests for content hashing and duplicate-group primary selection."""

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from src.content.deduplication import (
    content_fingerprint,
    generate_content_hash,
    normalize_text,
    resolve_duplicates,
    select_primary,
    text_similarity,
    youtube_video_id,
)
from src.ingestion.schemas import Platform

JAN = datetime(2025, 1, 1, tzinfo=timezone.utc)
FEB = datetime(2025, 2, 1, tzinfo=timezone.utc)


@dataclass
class Row:
    id: str
    platform: Platform
    published_at: datetime | None = None
    duplicate_group_id: str | None = None


class TestText:
    def test_normalize(self):
        assert normalize_text("  Hello,   World!\nNew-post ") == "hello world new post"
        assert normalize_text(None) == ""

    def test_fingerprint_drops_short_words_and_caps(self):
        text = " ".join(f"word{i}" for i in range(150))

        assert content_fingerprint("A is on the go, really") == "the really"
        assert len(content_fingerprint(text).split()) == 100

    def test_similarity(self):
        assert text_similarity("Launching our new app today", "launching our NEW app today!") == 1.0
        assert text_similarity("alpha beta gamma", "delta epsilon zeta") == 0.0
        assert text_similarity("", "") == 0.0

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        ],
    )
    def test_youtube_video_id(self, url):
        assert youtube_video_id(url) == "dQw4w9WgXcQ"

    def test_youtube_video_id_missing(self):
        assert youtube_video_id("https://www.youtube.com/@jack") is None


class TestContentHash:
    def test_social_cross_post_collides(self):
        tweet = generate_content_hash(
            "c1", Platform.TWITTER, "https://x.com/jack/status/1",
            title="Tweet by @jack", description="Big launch today, come see the demo!",
        )
        linkedin = generate_content_hash(
            "c1", Platform.LINKEDIN, "https://www.linkedin.com/posts/jack_1",
            title="LinkedIn post", description="Big launch today - come see the demo",
        )

        assert tweet == linkedin
        assert len(tweet) == 64

    def test_creator_is_part_of_hash(self):
        first = generate_content_hash("c1", Platform.THREADS, "https://threads.com/@a/post/1", description="same words here")
        second = generate_content_hash("c2", Platform.THREADS, "https://threads.com/@a/post/1", description="same words here")

        assert first != second

    def test_youtube_uses_video_id(self):
        first = generate_content_hash("c1", Platform.YOUTUBE, "https://www.youtube.com/watch?v=aaaaaaaaaaa", title="Weekly update")
        second = generate_content_hash("c1", Platform.YOUTUBE, "https://www.youtube.com/watch?v=bbbbbbbbbbb", title="Weekly update")

        assert first != second

    def test_rss_domain_ignores_www(self):
        first = generate_content_hash("c1", Platform.RSS, "https://www.blog.example.com/a", title="Post")
        second = generate_content_hash("c1", Platform.RSS, "https://blog.example.com/b", title="Post")
        other_site = generate_content_hash("c1", Platform.RSS, "https://other.example.com/a", title="Post")

        assert first == second
        assert first != other_site


class TestSelectPrimary:
    def test_platform_priority_wins(self):
        rows = [
            Row("tw", Platform.TWITTER, FEB),
            Row("yt", Platform.YOUTUBE, JAN),
            Row("rss", Platform.RSS, FEB),
        ]

        assert select_primary(rows).id == "yt"

    def test_newest_wins_on_same_platform(self):
        rows = [Row("old", Platform.LINKEDIN, JAN), Row("new", Platform.LINKEDIN, FEB)]

        assert select_primary(rows).id == "new"

    def test_missing_and_naive_dates(self):
        rows = [
            Row("undated", Platform.THREADS, None),
            Row("naive", Platform.THREADS, datetime(2024, 5, 1)),
        ]

        assert select_primary(rows).id == "naive"

    def test_first_wins_full_tie(self):
        rows = [Row("first", Platform.RSS, JAN), Row("second", Platform.RSS, JAN)]

        assert select_primary(rows).id == "first"

    def test_empty(self):
        with pytest.raises(ValueError):
            select_primary([])


class TestResolveDuplicates:
    def test_no_duplicates(self):
        resolution = resolve_duplicates(Row("new", Platform.TWITTER, JAN), "h", [])

        assert resolution.is_primary
        assert resolution.duplicate_group_id is None
        assert not resolution.has_duplicates

    def test_existing_group_reused(self):
        existing = [
            Row("a", Platform.YOUTUBE, JAN),
            Row("b", Platform.RSS, JAN, duplicate_group_id="group-1"),
        ]

        resolution = resolve_duplicates(Row("new", Platform.TWITTER, FEB), "h", existing)

        assert resolution.duplicate_group_id == "group-1"
        assert resolution.is_primary is False
        assert resolution.primary_id == "a"
        assert resolution.existing_ids == ("a", "b")

    def test_new_group_minted(self):
        existing = [Row("a", Platform.THREADS, JAN)]

        resolution = resolve_duplicates(Row("new", Platform.TWITTER, JAN), "h", existing)

        assert resolution.is_primary
        assert resolution.primary_id is None
        assert len(resolution.duplicate_group_id) == 36
