"""Tests for CreatorRepository against a mocked Database."""

import json
from datetime import datetime, timezone

import pytest

from src.creators.repository import CreatorRepository
from src.creators.schemas import FetchState
from src.ingestion.schemas import Platform

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


def _creator_row(**overrides) -> dict:
    row = {
        "id": "creator-1",
        "display_name": "Jack",
        "avatar_url": None,
        "user_id": "user-1",
        "metadata": json.dumps({"last_youtube_fetch": "2025-01-01T00:00:00Z"}),
        "fetch_state": json.dumps({}),
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def _url_row(platform: str, url: str) -> dict:
    return {
        "id": f"url-{platform}",
        "creator_id": "creator-1",
        "platform": platform,
        "url": url,
        "metadata": "{}",
        "created_at": NOW,
    }


@pytest.fixture
def repo(mock_database) -> CreatorRepository:
    return CreatorRepository(mock_database)


class TestListCreators:
    @pytest.mark.asyncio
    async def test_loads_urls_and_legacy_state(self, repo, mock_database):
        mock_database.fetch.side_effect = [
            [_creator_row()],
            [_url_row("rss", "https://e.com/feed"), _url_row("twitter", "https://x.com/jack")],
        ]

        (creator,) = await repo.list_creators()

        assert creator.display_name == "Jack"
        assert [u.platform for u in creator.urls] == [Platform.RSS, Platform.TWITTER]
        assert creator.fetch_state.last_youtube_fetch == datetime(2025, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_malformed_fetch_state_does_not_hide_other_creators(self, repo, mock_database):
        bad_state = {"schema_version": 1, "version": 2, "last_youtube_fetch": "not-a-date"}
        mock_database.fetch.side_effect = [
            [
                _creator_row(id="creator-1", fetch_state=json.dumps(FetchState(version=1).to_db())),
                _creator_row(id="creator-2", fetch_state=json.dumps(bad_state)),
            ],
            [],
        ]

        creators = await repo.list_creators()

        assert [c.id for c in creators] == ["creator-1", "creator-2"]
        assert creators[1].fetch_state.version == 2
        assert creators[1].fetch_state.last_youtube_fetch is None

    @pytest.mark.asyncio
    async def test_default_fetch_state_reads_legacy_metadata(self, repo, mock_database):
        mock_database.fetch.side_effect = [
            [_creator_row(fetch_state=json.dumps({"schema_version": 1, "version": 0}))],
            [],
        ]

        (creator,) = await repo.list_creators()

        assert creator.fetch_state.last_youtube_fetch == datetime(2025, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_filters(self, repo, mock_database):
        mock_database.fetch.return_value = []

        result = await repo.list_creators(
            user_id="user-1", creator_ids=["a", "b"], platform=Platform.LINKEDIN
        )

        assert result == []
        sql, *params = mock_database.fetch.await_args.args
        assert "c.user_id = $1" in sql
        assert "c.id = ANY($2::text[])" in sql
        assert "u.platform = $3" in sql
        assert params == ["user-1", ["a", "b"], "linkedin"]


class TestFetchState:
    @pytest.mark.asyncio
    async def test_update_writes_next_version(self, repo, mock_database):
        mock_database.execute.return_value = "UPDATE 1"
        state = FetchState(last_rss_fetch=NOW)

        written = await repo.update_fetch_state("creator-1", state, expected_version=4)

        assert written is True
        _, creator_id, payload, expected = mock_database.execute.await_args.args
        assert creator_id == "creator-1"
        assert expected == 4
        stored = json.loads(payload)
        assert stored["version"] == 5
        assert stored["schema_version"] == 1

    @pytest.mark.asyncio
    async def test_update_conflict(self, repo, mock_database):
        mock_database.execute.return_value = "UPDATE 0"

        assert await repo.update_fetch_state("creator-1", FetchState(), 0) is False

    @pytest.mark.asyncio
    async def test_get_fetch_state(self, repo, mock_database):
        mock_database.fetchrow.return_value = {
            "fetch_state": FetchState(version=2).to_db(),
            "metadata": {},
        }

        state = await repo.get_fetch_state("creator-1")

        assert state.version == 2

    @pytest.mark.asyncio
    async def test_get_fetch_state_unknown_creator(self, repo, mock_database):
        mock_database.fetchrow.return_value = None

        assert await repo.get_fetch_state("missing") is None


class TestWrites:
    @pytest.mark.asyncio
    async def test_add_creator_starts_at_version_zero(self, repo, mock_database):
        mock_database.fetchrow.return_value = _creator_row(
            fetch_state=json.dumps(FetchState().to_db()), metadata="{}"
        )

        creator = await repo.add_creator("Jack", user_id="user-1")

        assert creator.id == "creator-1"
        assert creator.fetch_state.version == 0

    @pytest.mark.asyncio
    async def test_avatar_only_set_when_missing(self, repo, mock_database):
        mock_database.execute.return_value = "UPDATE 0"

        assert await repo.set_avatar_if_missing("creator-1", "https://pbs/a.jpg") is False
        assert "avatar_url IS NULL" in mock_database.execute.await_args.args[0]
