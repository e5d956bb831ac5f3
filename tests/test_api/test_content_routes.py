"""Tests for the content read endpoints."""

from src.content.schemas import ContentError


class TestContentRoutes:
    def test_list(self, client, mock_content_service, sample_content):
        mock_content_service.list_content.return_value = ([sample_content], 1)

        response = client.get("/content", params={"creator_id": "creator-1", "limit": 10})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["limit"] == 10
        assert body["items"][0]["platform_content_id"] == "1750000000000000001"
        assert mock_content_service.list_content.await_args.kwargs["creator_id"] == "creator-1"

    def test_list_invalid_platform(self, client, mock_content_service):
        mock_content_service.list_content.side_effect = ContentError(
            "Invalid platform: myspace", ContentError.INVALID_PLATFORM, 400
        )

        response = client.get("/content", params={"platform": "myspace"})

        assert response.status_code == 400
        assert response.json()["code"] == ContentError.INVALID_PLATFORM

    def test_get_not_found(self, client, mock_content_service):
        mock_content_service.get_content.side_effect = ContentError(
            "Content not found", ContentError.CONTENT_NOT_FOUND, 404
        )

        response = client.get("/content/missing")

        assert response.status_code == 404
        assert response.json() == {
            "error": "Content not found",
            "code": ContentError.CONTENT_NOT_FOUND,
        }

    def test_get(self, client, mock_content_service, sample_content):
        mock_content_service.get_content.return_value = sample_content

        response = client.get("/content/content-1")

        assert response.status_code == 200
        assert response.json()["id"] == "content-1"
