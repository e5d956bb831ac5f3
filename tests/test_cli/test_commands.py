"""Tests for the content-tracker CLI commands that need no live services."""

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from src.cli import main
from src.creators.schemas import Creator


@pytest.fixture
def runner():
    return CliRunner()


class TestDetect:
    def test_detects_platform(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["detect", "https://x.com/jack"])

        assert result.exit_code == 0, result.output
        assert "platform:         twitter" in result.output
        assert "platform_user_id: jack" in result.output

    def test_unsupported_url_exits_nonzero(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["detect", "https://example.com/about"])

        assert result.exit_code == 1
        assert "UNSUPPORTED_PLATFORM" in result.output


class TestAddCreator:
    def test_mismatch_refused_without_force(self, runner: CliRunner) -> None:
        with patch("src.storage.database.Database") as MockDB:
            result = runner.invoke(
                main,
                ["add-creator", "Jane", "https://www.youtube.com/@jane", "--platform", "twitter"],
            )

        assert result.exit_code == 1
        assert "registered as twitter" in result.output
        MockDB.assert_not_called()

    def test_detected_platforms_stored(self, runner: CliRunner) -> None:
        mock_db = AsyncMock()
        mock_repo = AsyncMock()
        mock_repo.add_creator.return_value = Creator(id="creator-9", display_name="Jane")

        with patch("src.storage.database.Database", return_value=mock_db), patch(
            "src.creators.repository.CreatorRepository", return_value=mock_repo
        ):
            result = runner.invoke(
                main,
                [
                    "add-creator",
                    "Jane",
                    "https://www.youtube.com/@jane",
                    "https://blog.example.com/feed",
                    "--user-id",
                    "user-1",
                ],
            )

        assert result.exit_code == 0, result.output
        assert "Created creator creator-9 (Jane) with 2 URL(s)" in result.output
        mock_repo.add_creator.assert_awaited_once_with("Jane", user_id="user-1")
        calls = [c.args for c in mock_repo.add_url.await_args_list]
        assert calls == [
            ("creator-9", "youtube", "https://www.youtube.com/@jane"),
            ("creator-9", "rss", "https://blog.example.com/feed"),
        ]
        mock_db.close.assert_awaited_once()
