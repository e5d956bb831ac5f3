"""Tests for the manual refresh endpoints."""

import pytest

from src.ingestion.schemas import Platform
from src.services.schemas import (
    CreatorRefreshResult,
    RefreshFailedError,
    RefreshTrigger,
    UrlRefreshResult,
    UrlStatus,
)


class TestRefreshContent:
    def test_returns_run_result(self, client, mock_refresh_service, make_run_result):
        creator = CreatorRefreshResult(
            id="c1",
            name="Jack",
            urls=[
                UrlRefreshResult(
                    url="https://x.com/jack",
                    platform=Platform.TWITTER,
                    status=UrlStatus.SUCCESS,
                    fetched=3,
                    new=2,
                    updated=0,
                    errors=0,
                ),
                UrlRefreshResult(
                    url="https://www.youtube.com/@jack",
                    platform=Platform.YOUTUBE,
                    status=UrlStatus.ERROR,
                    error="YouTube API not configured. "
                    "Please add YOUTUBE_API_KEY to environment variables.",
                ),
            ],
        )
        mock_refresh_service.run.return_value = make_run_result(
            new=2, creator_count=1, processed=3, errors=1, creators=[creator]
        )

        response = client.post("/content/refresh", params={"user_id": "u1"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Fetched 2 new items from 1 creators"
        assert body["stats"]["processed"] == 3
        assert body["stats"]["errors"] == 1
        twitter, youtube = body["stats"]["creators"][0]["urls"]
        assert twitter["status"] == "success"
        assert youtube["status"] == "error"
        assert "fetched" not in youtube
        assert "YOUTUBE_API_KEY" in youtube["error"]
        assert "summaryGenerationError" not in body["stats"]
        mock_refresh_service.run.assert_awaited_once_with(
            RefreshTrigger.MANUAL, user_id="u1", platforms=None
        )

    def test_summary_error_surfaced(self, client, mock_refresh_service, make_run_result):
        mock_refresh_service.run.return_value = make_run_result(
            summary_generation_error="Connection refused"
        )

        response = client.post("/content/refresh")

        assert response.json()["stats"]["summaryGenerationError"] == "Connection refused"

    def test_platform_filter(self, client, mock_refresh_service):
        response = client.post("/content/refresh", params=[("platform", "YouTube")])

        assert response.status_code == 200
        assert mock_refresh_service.run.await_args.kwargs["platforms"] == [Platform.YOUTUBE]

    def test_invalid_platform_rejected(self, client, mock_refresh_service):
        response = client.post("/content/refresh", params={"platform": "myspace"})

        assert response.status_code == 400
        assert "Invalid platform" in response.json()["detail"]
        mock_refresh_service.run.assert_not_called()

    def test_run_failure_is_500(self, client, mock_refresh_service):
        mock_refresh_service.run.side_effect = RefreshFailedError(
            "Failed to refresh content", "connection refused"
        )

        response = client.post("/content/refresh")

        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to refresh content",
            "details": "connection refused",
        }

    def test_rss_only(self, client, mock_refresh_service):
        response = client.post("/content/refresh/rss")

        assert response.status_code == 200
        assert mock_refresh_service.run.await_args.kwargs["platforms"] == [Platform.RSS]

    def test_request_id_echoed(self, client):
        response = client.post("/content/refresh", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"


class TestApiKey:
    @pytest.fixture(autouse=True)
    def _keys(self, api_settings):
        api_settings.api_keys = "key-a, key-b"

    def test_missing_key(self, client):
        response = client.post("/content/refresh")

        assert response.status_code == 401

    def test_invalid_key(self, client):
        response = client.post("/content/refresh", headers={"X-API-KEY": "nope"})

        assert response.status_code == 401

    def test_valid_key(self, client):
        response = client.post("/content/refresh", headers={"X-API-KEY": "key-b"})

        assert response.status_code == 200
