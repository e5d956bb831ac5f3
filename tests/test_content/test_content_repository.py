"""Tests for ContentRepository SQL wiring against a mocked Database."""

import json
from datetime import datetime, timezone

import pytest

from src.content.deduplication import DuplicateResolution
from src.content.repository import ContentRepository
from src.ingestion.schemas import MediaType, MediaUrl, Platform, SummaryStatus


def _row(**overrides) -> dict:
    row = {
        "id": "content-1",
        "creator_id": "creator-1",
        "platform": "youtube",
        "platform_content_id": "vid1",
        "url": "https://www.youtube.com/watch?v=vid1",
        "title": "A video",
        "description": None,
        "thumbnail_url": None,
        "published_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
        "content_body": None,
        "word_count": 0,
        "reading_time_minutes": 0,
        "media_urls": json.dumps([{"url": "https://www.youtube.com/watch?v=vid1", "type": "video"}]),
        "engagement_metrics": json.dumps({"views": 10}),
        "reference_type": None,
        "referenced_content_id": None,
        "referenced_content": None,
        "processing_status": "processed",
        "content_hash": None,
        "duplicate_group_id": None,
        "is_primary": True,
        "ai_summary_short": None,
        "ai_summary_long": None,
        "summary_status": "pending",
        "summary_model": None,
        "summary_generated_at": None,
        "summary_error_message": None,
        "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


@pytest.fixture
def repo(mock_database) -> ContentRepository:
    return ContentRepository(mock_database)


class TestReads:
    @pytest.mark.asyncio
    async def test_row_json_columns_decoded(self, repo, mock_database):
        mock_database.fetchrow.return_value = _row()

        content = await repo.get_by_id("content-1")

        assert content.engagement_metrics.views == 10
        assert content.media_urls[0].type == "video"
        assert content.summary_status == SummaryStatus.PENDING

    @pytest.mark.asyncio
    async def test_find_by_dedup_key_params(self, repo, mock_database):
        mock_database.fetchrow.return_value = None

        assert await repo.find_by_dedup_key("creator-1", Platform.YOUTUBE, "vid1") is None
        args = mock_database.fetchrow.await_args.args
        assert args[1:] == ("creator-1", "youtube", "vid1")

    @pytest.mark.asyncio
    async def test_list_content_filters_and_paging(self, repo, mock_database):
        mock_database.fetchval.return_value = 1
        mock_database.fetch.return_value = [_row()]

        items, total = await repo.list_content(
            creator_id="creator-1", platform="youtube", user_id="u1", limit=5, offset=10
        )

        assert total == 1
        assert [c.id for c in items] == ["content-1"]
        count_sql, *count_params = mock_database.fetchval.await_args.args
        assert "c.creator_id = $1" in count_sql
        assert "c.platform = $2" in count_sql
        assert "user_id = $3" in count_sql
        assert count_params == ["creator-1", "youtube", "u1"]
        list_sql, *list_params = mock_database.fetch.await_args.args
        assert "LIMIT $4 OFFSET $5" in list_sql
        assert list_params[-2:] == [5, 10]


class TestWrites:
    @pytest.mark.asyncio
    async def test_insert_serializes_json(self, repo, mock_database, sample_input):
        mock_database.fetchval.return_value = "new-id"
        item = sample_input.model_copy(
            update={"media_urls": [MediaUrl(url="https://pbs/a.jpg", type=MediaType.IMAGE)]}
        )

        assert await repo.insert(item) == "new-id"
        args = mock_database.fetchval.await_args.args
        assert "ON CONFLICT" in args[0]
        assert args[2] == "twitter"
        assert json.loads(args[12]) == [{"url": "https://pbs/a.jpg", "type": "image"}]
        assert json.loads(args[13]) == {"likes": 10, "retweets": 2, "views": 500, "custom": {}}
        assert args[18:] == (None, None, True)

    @pytest.mark.asyncio
    async def test_insert_with_duplicate_group(self, repo, mock_database, sample_input):
        mock_database.fetchval.return_value = "new-id"
        duplicates = DuplicateResolution(
            content_hash="abc", duplicate_group_id="group-1", is_primary=False
        )

        await repo.insert(sample_input, duplicates)

        args = mock_database.fetchval.await_args.args
        assert "content_hash" in args[0]
        assert args[18:] == ("abc", "group-1", False)

    @pytest.mark.asyncio
    async def test_set_duplicate_group_single_primary(self, repo, mock_database):
        mock_database.execute.return_value = "UPDATE 2"

        updated = await repo.set_duplicate_group(["a", "b"], "group-1", "b")

        assert updated == 2
        sql, ids, group_id, primary_id = mock_database.execute.await_args.args
        assert "is_primary = (id = $3)" in sql
        assert (ids, group_id, primary_id) == (["a", "b"], "group-1", "b")
        assert await repo.set_duplicate_group([], "group-1", "b") == 0

    @pytest.mark.asyncio
    async def test_find_recent_social(self, repo, mock_database):
        mock_database.fetch.return_value = [_row(platform="twitter", content_hash="abc")]
        since = datetime(2025, 1, 1, tzinfo=timezone.utc)

        (row,) = await repo.find_recent_social("creator-1", since)

        assert row.content_hash == "abc"
        _, creator_id, platforms, passed_since = mock_database.fetch.await_args.args
        assert creator_id == "creator-1"
        assert platforms == ["linkedin", "threads", "twitter"]
        assert passed_since == since

    @pytest.mark.asyncio
    async def test_update_mutable_leaves_identity(self, repo, mock_database, sample_input):
        assert await repo.update_mutable("content-1", sample_input)
        sql = mock_database.execute.await_args.args[0]
        assert "platform_content_id" not in sql
        assert "creator_id" not in sql
        assert "updated_at = NOW()" in sql

    @pytest.mark.asyncio
    async def test_set_summary_status_counts_rows(self, repo, mock_database):
        mock_database.execute.return_value = "UPDATE 3"

        updated = await repo.set_summary_status(["a", "b", "c"], SummaryStatus.PROCESSING)

        assert updated == 3
        assert mock_database.execute.await_args.args[2] == "processing"

    @pytest.mark.asyncio
    async def test_select_pending_summary_ids(self, repo, mock_database):
        mock_database.fetch.return_value = [{"id": "a"}, {"id": "b"}]

        assert await repo.select_pending_summary_ids(["creator-1"], 50) == ["a", "b"]
        assert await repo.select_pending_summary_ids([], 50) == []
        assert mock_database.fetch.await_count == 1
